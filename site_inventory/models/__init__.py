#users and audit
from site_inventory.models.users.user_models import User
from site_inventory.models.support.activity_models import UserActivity

# Masters
from site_inventory.models.masters.site_models import Site
from site_inventory.models.masters.item_models import Item
from site_inventory.models.masters.vendor_models import Vendor

# Inventory
from site_inventory.models.inventory.stock_ledger_models import StockLedger
from site_inventory.models.inventory.site_item_models import SiteItem, SiteItemBatch
from site_inventory.models.inventory.outward_challan_models import (
    OutwardDeliveryChallan,
    OutwardDeliveryChallanDetail,
    OutwardDeliveryChallanDetailBatch,
)
from site_inventory.models.inventory.stock_adjustment_models import (
    StockAdjustment,
    StockAdjustmentDetail,
)
from site_inventory.models.inventory.inward_challan_models import (
    InwardDeliveryChallan,
    InwardDeliveryChallanDetail,
    InwardDeliveryChallanDetailBatch,
)
from site_inventory.models.inventory.daily_consumption_models import (
    DailyConsumption,
    DailyConsumptionDetail,
)

# Procurement
from site_inventory.models.procurement.indent_models import Indent, IndentItem
from site_inventory.models.procurement.purchase_order_models import (
    PurchaseOrder,
    PurchaseOrderDetail,
)

# Budget
from site_inventory.models.budget.site_budget_models import (
    SiteBudget,
    SiteBudgetDetail,
    SiteBudgetItem,
)
