from pydantic import BaseModel, Field
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional


class DailyConsumptionLineSchema(BaseModel):
    item_id: int
    qty: Decimal = Field(gt=0)


class DailyConsumptionCreateSchema(BaseModel):
    daily_consumption_no: Optional[str] = Field(default=None, max_length=30)
    daily_consumption_date: date
    site_id: int
    details: List[DailyConsumptionLineSchema] = Field(min_length=1)


class DailyConsumptionLineOutSchema(BaseModel):
    id: int
    item_id: int
    qty: Decimal
    rate: Decimal
    amount: Decimal

    class Config:
        from_attributes = True


class DailyConsumptionOutSchema(BaseModel):
    id: int
    daily_consumption_no: str
    daily_consumption_date: date
    site_id: int
    total_amount: Decimal
    created_at: datetime
    created_by_id: Optional[int]
    details: List[DailyConsumptionLineOutSchema]

    class Config:
        from_attributes = True


class DailyConsumptionListItemSchema(BaseModel):
    id: int
    daily_consumption_no: str
    daily_consumption_date: date
    site_id: int
    total_amount: Decimal
    created_at: datetime

    class Config:
        from_attributes = True
