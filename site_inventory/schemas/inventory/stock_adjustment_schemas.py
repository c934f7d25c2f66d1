from pydantic import BaseModel, Field, model_validator
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional


class StockAdjustmentLineSchema(BaseModel):
    item_id: int
    received_qty: Decimal = Field(default=Decimal("0"), ge=0)
    issued_qty: Decimal = Field(default=Decimal("0"), ge=0)
    rate: Decimal = Field(default=Decimal("0"), ge=0)
    remarks: Optional[str] = None

    @model_validator(mode="after")
    def one_direction(self):
        if self.received_qty == 0 and self.issued_qty == 0:
            raise ValueError("Either received_qty or issued_qty must be greater than 0")
        return self


class StockAdjustmentCreateSchema(BaseModel):
    site_id: int
    adjustment_date: date
    remarks: Optional[str] = None
    details: List[StockAdjustmentLineSchema] = Field(min_length=1)


class StockAdjustmentLineOutSchema(BaseModel):
    id: int
    item_id: int
    received_qty: Decimal
    issued_qty: Decimal
    rate: Decimal
    amount: Decimal
    remarks: Optional[str]

    class Config:
        from_attributes = True


class StockAdjustmentOutSchema(BaseModel):
    id: int
    site_id: int
    adjustment_date: date
    remarks: Optional[str]
    created_at: datetime
    created_by_id: Optional[int]
    details: List[StockAdjustmentLineOutSchema]
