# site_inventory/schemas/masters/master_schemas.py

from pydantic import BaseModel, Field, field_validator
from typing import Optional
from datetime import datetime


class SiteCreate(BaseModel):
    site: str = Field(min_length=1, max_length=200)
    site_code: Optional[str] = Field(default=None, max_length=20)

    @field_validator("site_code")
    @classmethod
    def normalize_code(cls, v):
        if v is None:
            return v
        v = v.strip().upper()
        if v and not v.isalnum():
            raise ValueError("Site code must be alphanumeric")
        return v or None


class SiteOut(BaseModel):
    id: int
    site: str
    site_code: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


class ItemCreate(BaseModel):
    item_code: str = Field(min_length=1, max_length=50)
    item: str = Field(min_length=1, max_length=255)
    unit: Optional[str] = Field(default=None, max_length=20)
    is_expiry_date: bool = False


class ItemOut(BaseModel):
    id: int
    item_code: str
    item: str
    unit: Optional[str]
    is_expiry_date: bool
    created_at: datetime

    class Config:
        from_attributes = True


class VendorCreate(BaseModel):
    vendor_name: str = Field(min_length=1, max_length=200)
    gst_no: Optional[str] = Field(default=None, max_length=20)


class VendorOut(BaseModel):
    id: int
    vendor_name: str
    gst_no: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True
