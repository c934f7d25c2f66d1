# site_inventory/routers/__init__.py

from .masters.master_router import router as master_router

from .inventory.outward_challan_router import router as outward_challan_router
from .inventory.inward_challan_router import router as inward_challan_router
from .inventory.daily_consumption_router import router as daily_consumption_router
from .inventory.stock_router import router as stock_router
from .inventory.stock_adjustment_router import router as stock_adjustment_router

from .procurement.purchase_order_router import router as purchase_order_router

from .budget.site_budget_router import router as site_budget_router


__all__ = [
    "master_router",

    "outward_challan_router",
    "inward_challan_router",
    "daily_consumption_router",
    "stock_router",
    "stock_adjustment_router",

    "purchase_order_router",

    "site_budget_router",
]
