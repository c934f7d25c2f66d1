import enum


class PurchaseOrderStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    APPROVED_LEVEL_1 = "APPROVED_LEVEL_1"
    APPROVED_LEVEL_2 = "APPROVED_LEVEL_2"
    COMPLETED = "COMPLETED"
    SUSPENDED = "SUSPENDED"
