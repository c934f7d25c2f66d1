from pydantic import BaseModel, Field
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from site_inventory.models.enums.purchase_order_status import PurchaseOrderStatus


# ==============================
# INPUT
# ==============================
class PurchaseOrderLineCreateSchema(BaseModel):
    item_id: int
    remark: Optional[str] = None
    qty: Decimal = Field(gt=0)
    rate: Decimal = Field(ge=0)

    discount_percent: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    cgst_percent: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    sgst_percent: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    igst_percent: Decimal = Field(default=Decimal("0"), ge=0, le=100)

    # computed by the caller
    dis_amt: Decimal = Decimal("0")
    cgst_amt: Decimal = Decimal("0")
    sgst_amt: Decimal = Decimal("0")
    igst_amt: Decimal = Decimal("0")
    amount: Decimal = Decimal("0")

    indent_item_id: Optional[int] = None


class PurchaseOrderCreateSchema(BaseModel):
    site_id: int
    vendor_id: Optional[int] = None
    indent_id: Optional[int] = None

    purchase_order_date: date
    delivery_date: Optional[date] = None
    quotation_no: Optional[str] = None
    quotation_date: Optional[date] = None
    transport: Optional[str] = None
    note: Optional[str] = None
    delivery_schedule: Optional[str] = None
    payment_terms_in_days: Optional[int] = Field(default=None, ge=0)

    amount: Decimal = Field(ge=0)
    total_cgst_amount: Decimal = Decimal("0")
    total_sgst_amount: Decimal = Decimal("0")
    total_igst_amount: Decimal = Decimal("0")

    details: List[PurchaseOrderLineCreateSchema] = Field(min_length=1)


class LineApprovedQtySchema(BaseModel):
    detail_id: int
    qty: Decimal = Field(ge=0)


class PurchaseOrderApproveSchema(BaseModel):
    # lines not listed keep their current quantity
    details: List[LineApprovedQtySchema] = []


# ==============================
# OUTPUT
# ==============================
class PurchaseOrderLineOutSchema(BaseModel):
    id: int
    serial_no: int
    item_id: int
    remark: Optional[str]
    qty: Decimal
    ordered_qty: Decimal
    approved1_qty: Optional[Decimal]
    approved2_qty: Optional[Decimal]
    received_qty: Decimal
    rate: Decimal
    discount_percent: Decimal
    dis_amt: Decimal
    cgst_percent: Decimal
    cgst_amt: Decimal
    sgst_percent: Decimal
    sgst_amt: Decimal
    igst_percent: Decimal
    igst_amt: Decimal
    amount: Decimal

    class Config:
        from_attributes = True


class PurchaseOrderOutSchema(BaseModel):
    id: int
    purchase_order_no: str
    purchase_order_date: date
    delivery_date: Optional[date]

    site_id: int
    site: Optional[str]
    vendor_id: Optional[int]
    vendor: Optional[str]
    indent_id: Optional[int]

    quotation_no: Optional[str]
    quotation_date: Optional[date]
    transport: Optional[str]
    note: Optional[str]
    delivery_schedule: Optional[str]
    payment_terms_in_days: Optional[int]

    amount: Decimal
    total_cgst_amount: Decimal
    total_sgst_amount: Decimal
    total_igst_amount: Decimal

    approval_status: PurchaseOrderStatus
    approved1_by_id: Optional[int]
    approved1_at: Optional[datetime]
    approved2_by_id: Optional[int]
    approved2_at: Optional[datetime]
    completed_by_id: Optional[int]
    completed_at: Optional[datetime]
    suspended_by_id: Optional[int]
    suspended_at: Optional[datetime]

    created_at: datetime
    created_by_id: Optional[int]
    created_by: Optional[str]

    details: List[PurchaseOrderLineOutSchema]
