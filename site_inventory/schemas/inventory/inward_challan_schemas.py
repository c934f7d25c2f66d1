from pydantic import BaseModel, Field, field_validator
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional


# ==============================
# INPUT
# ==============================
class InwardBatchSchema(BaseModel):
    batch_number: str = Field(min_length=1, max_length=100)
    expiry_date: Optional[date] = None
    qty: Decimal = Field(gt=0)

    @field_validator("batch_number")
    @classmethod
    def strip_batch_number(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("batch_number cannot be blank")
        return v


class InwardLineCreateSchema(BaseModel):
    purchase_order_detail_id: int
    receiving_qty: Decimal = Field(gt=0)
    batches: List[InwardBatchSchema] = []


class InwardChallanCreateSchema(BaseModel):
    purchase_order_id: int
    inward_challan_no: Optional[str] = Field(default=None, max_length=30)
    inward_challan_date: date

    challan_no: str = Field(min_length=1, max_length=100)
    challan_date: date
    lr_no: Optional[str] = Field(default=None, max_length=100)
    lr_date: Optional[date] = None
    bill_no: Optional[str] = Field(default=None, max_length=100)
    bill_date: Optional[date] = None
    vehicle_no: Optional[str] = Field(default=None, max_length=50)
    remarks: Optional[str] = Field(default=None, max_length=255)

    details: List[InwardLineCreateSchema] = Field(min_length=1)


# ==============================
# OUTPUT
# ==============================
class InwardBatchOutSchema(BaseModel):
    id: int
    batch_number: str
    expiry_date: Optional[date]
    qty: Decimal

    class Config:
        from_attributes = True


class InwardLineOutSchema(BaseModel):
    id: int
    purchase_order_detail_id: int
    item_id: int
    receiving_qty: Decimal
    rate: Decimal
    amount: Decimal
    batches: List[InwardBatchOutSchema]

    class Config:
        from_attributes = True


class InwardChallanOutSchema(BaseModel):
    id: int
    inward_challan_no: str
    inward_challan_date: date
    purchase_order_id: int
    purchase_order_no: Optional[str]
    vendor_id: Optional[int]
    site_id: int
    site: Optional[str]
    challan_no: str
    challan_date: date
    lr_no: Optional[str]
    lr_date: Optional[date]
    bill_no: Optional[str]
    bill_date: Optional[date]
    vehicle_no: Optional[str]
    remarks: Optional[str]
    bill_amount: Decimal
    created_at: datetime
    created_by: Optional[str]
    details: List[InwardLineOutSchema]


class InwardChallanListItemSchema(BaseModel):
    id: int
    inward_challan_no: str
    inward_challan_date: date
    purchase_order_id: int
    site_id: int
    challan_no: str
    bill_amount: Decimal
    created_at: datetime

    class Config:
        from_attributes = True
