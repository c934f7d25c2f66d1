# site_inventory/schemas/budget/site_budget_schemas.py

from pydantic import BaseModel, Field
from typing import Optional, List
from decimal import Decimal
from datetime import date, datetime


class SiteBudgetItemCreate(BaseModel):
    item_id: int
    budget_qty: Decimal = Field(ge=0)
    budget_rate: Decimal = Field(ge=0)
    purchase_rate: Decimal = Field(default=Decimal("0"), ge=0)

    qty_50_alert: bool = False
    value_50_alert: bool = False
    qty_75_alert: bool = False
    value_75_alert: bool = False


class SiteBudgetDetailCreate(BaseModel):
    boq_item_id: Optional[int] = None
    items: List[SiteBudgetItemCreate] = Field(min_length=1)


class SiteBudgetCreate(BaseModel):
    site_id: int
    boq_id: Optional[int] = None
    month: Optional[str] = None
    week: Optional[str] = None
    from_date: Optional[date] = None
    to_date: Optional[date] = None

    details: List[SiteBudgetDetailCreate] = Field(min_length=1)


class SiteBudgetItemUpdate(BaseModel):
    item_id: Optional[int] = None
    budget_qty: Optional[Decimal] = Field(default=None, ge=0)
    budget_rate: Optional[Decimal] = Field(default=None, ge=0)
    purchase_rate: Optional[Decimal] = Field(default=None, ge=0)
    ordered_qty: Optional[Decimal] = Field(default=None, ge=0)
    avg_rate: Optional[Decimal] = Field(default=None, ge=0)

    qty_50_alert: Optional[bool] = None
    value_50_alert: Optional[bool] = None
    qty_75_alert: Optional[bool] = None
    value_75_alert: Optional[bool] = None


class SiteBudgetItemOut(BaseModel):
    id: int
    item_id: int

    budget_qty: Decimal
    budget_rate: Decimal
    purchase_rate: Decimal
    budget_value: Decimal

    ordered_qty: Decimal
    avg_rate: Decimal
    ordered_value: Decimal

    qty_50_alert: bool
    value_50_alert: bool
    qty_75_alert: bool
    value_75_alert: bool

    class Config:
        from_attributes = True


class SiteBudgetDetailOut(BaseModel):
    id: int
    boq_item_id: Optional[int]
    items: List[SiteBudgetItemOut]

    class Config:
        from_attributes = True


class SiteBudgetOut(BaseModel):
    id: int
    site_id: int
    site: Optional[str]
    boq_id: Optional[int]
    month: Optional[str]
    week: Optional[str]
    from_date: Optional[date]
    to_date: Optional[date]

    total_budget_value: Decimal
    total_ordered_value: Decimal

    created_at: datetime
    created_by: Optional[str]

    details: List[SiteBudgetDetailOut]


class SiteBudgetSummary(BaseModel):
    site_id: int
    total_items: int
    total_budget_value: Decimal
    avg_budget_rate: Decimal


class BudgetViolation(BaseModel):
    item_id: int
    item_name: Optional[str]
    budget_qty: Decimal
    ordered_qty: Decimal
    available_qty: Decimal
    requested_qty: Decimal
