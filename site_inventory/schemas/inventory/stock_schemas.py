from pydantic import BaseModel
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from site_inventory.constants.stock_document_type import StockDocumentType


class SiteItemBatchOutSchema(BaseModel):
    batch_number: str
    expiry_date: Optional[date]
    closing_qty: Decimal
    unit_rate: Decimal
    closing_value: Decimal

    class Config:
        from_attributes = True


class SiteItemOutSchema(BaseModel):
    id: int
    site_id: int
    item_id: int
    item_code: str
    item: str
    unit: Optional[str]

    opening_stock: Decimal
    closing_stock: Decimal
    unit_rate: Decimal
    closing_value: Decimal

    batches: List[SiteItemBatchOutSchema] = []


class StockLedgerOutSchema(BaseModel):
    id: int
    site_id: int
    item_id: int
    transaction_date: datetime
    document_type: StockDocumentType
    document_id: int
    received_qty: Decimal
    issued_qty: Decimal
    unit_rate: Decimal

    class Config:
        from_attributes = True


class StockDriftSchema(BaseModel):
    item_id: int
    ledger_qty: Decimal
    closing_stock: Decimal
    difference: Decimal


class StockReconciliationSchema(BaseModel):
    site_id: int
    items_checked: int
    drifts: List[StockDriftSchema]
