from enum import Enum


class ActivityCode(str, Enum):
    # ---------------- MASTERS ----------------
    CREATE_SITE = "CREATE_SITE"
    CREATE_ITEM = "CREATE_ITEM"
    CREATE_VENDOR = "CREATE_VENDOR"

    # ---------------- STOCK ----------------
    STOCK_MOVEMENT = "STOCK_MOVEMENT"
    CREATE_STOCK_ADJUSTMENT = "CREATE_STOCK_ADJUSTMENT"
    CREATE_INWARD_CHALLAN = "CREATE_INWARD_CHALLAN"
    CREATE_DAILY_CONSUMPTION = "CREATE_DAILY_CONSUMPTION"

    # ---------------- OUTWARD CHALLAN ----------------
    CREATE_OUTWARD_CHALLAN = "CREATE_OUTWARD_CHALLAN"
    APPROVE_OUTWARD_CHALLAN = "APPROVE_OUTWARD_CHALLAN"
    ACCEPT_OUTWARD_CHALLAN = "ACCEPT_OUTWARD_CHALLAN"

    # ---------------- PURCHASE ORDER ----------------
    CREATE_PURCHASE_ORDER = "CREATE_PURCHASE_ORDER"
    APPROVE_PURCHASE_ORDER = "APPROVE_PURCHASE_ORDER"
    COMPLETE_PURCHASE_ORDER = "COMPLETE_PURCHASE_ORDER"
    SUSPEND_PURCHASE_ORDER = "SUSPEND_PURCHASE_ORDER"
    UNSUSPEND_PURCHASE_ORDER = "UNSUSPEND_PURCHASE_ORDER"

    # ---------------- SITE BUDGET ----------------
    CREATE_SITE_BUDGET = "CREATE_SITE_BUDGET"
    UPDATE_SITE_BUDGET_LINE = "UPDATE_SITE_BUDGET_LINE"
    DELETE_SITE_BUDGET = "DELETE_SITE_BUDGET"
