from enum import Enum


class ErrorCode(str, Enum):
    # ---------------- GENERIC ----------------
    VALIDATION_ERROR = "VALIDATION_ERROR"
    UNAUTHORIZED = "UNAUTHORIZED"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    INTERNAL_ERROR = "INTERNAL_ERROR"

    # ---------------- MASTERS ----------------
    SITE_NOT_FOUND = "SITE_NOT_FOUND"
    SITE_CODE_MISSING = "SITE_CODE_MISSING"
    SITE_DUPLICATE = "SITE_DUPLICATE"
    ITEM_NOT_FOUND = "ITEM_NOT_FOUND"
    ITEM_DUPLICATE = "ITEM_DUPLICATE"
    VENDOR_DUPLICATE = "VENDOR_DUPLICATE"

    # ---------------- STOCK ----------------
    STOCK_INVALID_MOVEMENT = "STOCK_INVALID_MOVEMENT"
    STOCK_INSUFFICIENT = "STOCK_INSUFFICIENT"
    BATCH_NOT_FOUND = "BATCH_NOT_FOUND"
    BATCH_EXPIRY_MISMATCH = "BATCH_EXPIRY_MISMATCH"
    BATCH_QTY_MISMATCH = "BATCH_QTY_MISMATCH"
    BATCH_NOT_ALLOWED = "BATCH_NOT_ALLOWED"

    # ---------------- OUTWARD CHALLAN ----------------
    ODC_NOT_FOUND = "ODC_NOT_FOUND"
    ODC_EMPTY_ITEMS = "ODC_EMPTY_ITEMS"
    ODC_INVALID_SITE = "ODC_INVALID_SITE"
    ODC_INVALID_STATUS = "ODC_INVALID_STATUS"
    ODC_INVALID_LINES = "ODC_INVALID_LINES"
    ODC_SELF_APPROVAL = "ODC_SELF_APPROVAL"
    ODC_DUPLICATE_NUMBER = "ODC_DUPLICATE_NUMBER"

    # ---------------- STOCK ADJUSTMENT ----------------
    ADJUSTMENT_EMPTY_ITEMS = "ADJUSTMENT_EMPTY_ITEMS"
    ADJUSTMENT_INVALID_LINE = "ADJUSTMENT_INVALID_LINE"

    # ---------------- INWARD CHALLAN ----------------
    IDC_NOT_FOUND = "IDC_NOT_FOUND"
    IDC_INVALID_LINES = "IDC_INVALID_LINES"
    IDC_OVER_RECEIPT = "IDC_OVER_RECEIPT"
    IDC_DUPLICATE_NUMBER = "IDC_DUPLICATE_NUMBER"

    # ---------------- DAILY CONSUMPTION ----------------
    DC_NOT_FOUND = "DC_NOT_FOUND"
    DC_DUPLICATE_NUMBER = "DC_DUPLICATE_NUMBER"

    # ---------------- PURCHASE ORDER ----------------
    PO_NOT_FOUND = "PO_NOT_FOUND"
    PO_EMPTY_ITEMS = "PO_EMPTY_ITEMS"
    PO_INVALID_STATUS = "PO_INVALID_STATUS"
    PO_INVALID_LINES = "PO_INVALID_LINES"
    PO_SELF_APPROVAL = "PO_SELF_APPROVAL"
    PO_NUMBER_CONFLICT = "PO_NUMBER_CONFLICT"
    PO_BUDGET_EXCEEDED = "PO_BUDGET_EXCEEDED"
    VENDOR_NOT_FOUND = "VENDOR_NOT_FOUND"
    INDENT_NOT_FOUND = "INDENT_NOT_FOUND"

    # ---------------- SITE BUDGET ----------------
    BUDGET_NOT_FOUND = "BUDGET_NOT_FOUND"
    BUDGET_LINE_NOT_FOUND = "BUDGET_LINE_NOT_FOUND"
    BUDGET_DUPLICATE_ITEM = "BUDGET_DUPLICATE_ITEM"
    BUDGET_EMPTY_ITEMS = "BUDGET_EMPTY_ITEMS"
