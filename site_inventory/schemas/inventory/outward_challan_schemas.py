from pydantic import BaseModel, Field, field_validator
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from site_inventory.models.enums.challan_status import ChallanStatus


# ==============================
# INPUT
# ==============================
class ChallanBatchSchema(BaseModel):
    batch_number: str = Field(min_length=1, max_length=100)
    expiry_date: Optional[date] = None
    qty: Decimal = Field(gt=0)
    unit_rate: Decimal = Field(default=Decimal("0"), ge=0)

    @field_validator("batch_number")
    @classmethod
    def strip_batch_number(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("batch_number cannot be blank")
        return v


class ChallanLineCreateSchema(BaseModel):
    item_id: int
    challan_qty: Decimal = Field(ge=0)
    remarks: Optional[str] = None
    batches: List[ChallanBatchSchema] = []


class OutwardChallanCreateSchema(BaseModel):
    outward_challan_no: Optional[str] = Field(default=None, max_length=30)
    outward_challan_date: date
    challan_no: Optional[str] = None
    challan_date: Optional[date] = None
    from_site_id: int
    to_site_id: int
    remarks: Optional[str] = None
    details: List[ChallanLineCreateSchema] = Field(min_length=1)


class LineApprovalSchema(BaseModel):
    detail_id: int
    approved1_qty: Decimal


class ChallanApproveSchema(BaseModel):
    details: List[LineApprovalSchema]


class LineAcceptanceSchema(BaseModel):
    detail_id: int
    received_qty: Decimal
    # replaces the stored batch rows of this line when given
    batches: Optional[List[ChallanBatchSchema]] = None


class ChallanAcceptSchema(BaseModel):
    details: List[LineAcceptanceSchema]


# ==============================
# OUTPUT
# ==============================
class ChallanBatchOutSchema(BaseModel):
    id: int
    batch_number: str
    expiry_date: Optional[date]
    qty: Decimal
    unit_rate: Decimal
    amount: Decimal

    class Config:
        from_attributes = True


class ChallanLineOutSchema(BaseModel):
    id: int
    item_id: int
    item_code: Optional[str]
    item: Optional[str]
    qty: Decimal
    challan_qty: Decimal
    approved1_qty: Optional[Decimal]
    received_qty: Optional[Decimal]
    remarks: Optional[str]
    batches: List[ChallanBatchOutSchema]


class OutwardChallanOutSchema(BaseModel):
    id: int
    outward_challan_no: str
    outward_challan_date: date
    challan_no: Optional[str]
    challan_date: Optional[date]
    remarks: Optional[str]

    from_site_id: int
    from_site: Optional[str]
    to_site_id: int
    to_site: Optional[str]

    status: ChallanStatus
    is_approved1: bool
    is_accepted: bool

    approved1_by_id: Optional[int]
    approved1_by: Optional[str]
    approved1_at: Optional[datetime]
    accepted_by_id: Optional[int]
    accepted_by: Optional[str]
    accepted_at: Optional[datetime]

    created_at: datetime
    created_by_id: Optional[int]
    created_by: Optional[str]

    details: List[ChallanLineOutSchema]


class OutwardChallanListItemSchema(BaseModel):
    id: int
    outward_challan_no: str
    outward_challan_date: date
    from_site_id: int
    to_site_id: int
    status: ChallanStatus
    no_of_items: int
    created_at: datetime
