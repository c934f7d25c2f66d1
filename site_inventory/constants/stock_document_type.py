# site_inventory/constants/stock_document_type.py

from enum import Enum


class StockDocumentType(str, Enum):
    """Source document of a stock ledger row."""

    OUTWARD_DELIVERY_CHALLAN = "OUTWARD_DELIVERY_CHALLAN"
    STOCK_ADJUSTMENT = "STOCK_ADJUSTMENT"
    INWARD_DELIVERY_CHALLAN = "INWARD_DELIVERY_CHALLAN"
    DAILY_CONSUMPTION = "DAILY_CONSUMPTION"
