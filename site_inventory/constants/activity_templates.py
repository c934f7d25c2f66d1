from site_inventory.constants.activity_codes import ActivityCode


ACTIVITY_TEMPLATES = {
    # ---------------- MASTERS ----------------
    ActivityCode.CREATE_SITE:
        "{actor_role} ({actor_email}) created site {target_name}",

    ActivityCode.CREATE_ITEM:
        "{actor_role} ({actor_email}) created item {target_name}",

    ActivityCode.CREATE_VENDOR:
        "{actor_role} ({actor_email}) created vendor {target_name}",

    # ---------------- STOCK ----------------
    ActivityCode.STOCK_MOVEMENT:
        "{actor_role} ({actor_email}) moved stock of item {item_id} at site {site_id}: "
        "received {received_qty}, issued {issued_qty} "
        "(ref: {document_type}:{document_id})",

    ActivityCode.CREATE_STOCK_ADJUSTMENT:
        "{actor_role} ({actor_email}) posted stock adjustment {target_name} "
        "at site {site_id}",

    ActivityCode.CREATE_INWARD_CHALLAN:
        "{actor_role} ({actor_email}) received inward challan {target_name} "
        "against purchase order {purchase_order_no} at site {site_id}",

    ActivityCode.CREATE_DAILY_CONSUMPTION:
        "{actor_role} ({actor_email}) recorded daily consumption {target_name} "
        "at site {site_id}",

    # ---------------- OUTWARD CHALLAN ----------------
    ActivityCode.CREATE_OUTWARD_CHALLAN:
        "{actor_role} ({actor_email}) created outward challan {target_name}",

    ActivityCode.APPROVE_OUTWARD_CHALLAN:
        "{actor_role} ({actor_email}) approved outward challan {target_name}",

    ActivityCode.ACCEPT_OUTWARD_CHALLAN:
        "{actor_role} ({actor_email}) accepted outward challan {target_name}; "
        "stock moved from site {from_site_id} to site {to_site_id}",

    # ---------------- PURCHASE ORDER ----------------
    ActivityCode.CREATE_PURCHASE_ORDER:
        "{actor_role} ({actor_email}) created purchase order {target_name}",

    ActivityCode.APPROVE_PURCHASE_ORDER:
        "{actor_role} ({actor_email}) approved purchase order {target_name} ({level})",

    ActivityCode.COMPLETE_PURCHASE_ORDER:
        "{actor_role} ({actor_email}) completed purchase order {target_name}",

    ActivityCode.SUSPEND_PURCHASE_ORDER:
        "{actor_role} ({actor_email}) suspended purchase order {target_name}",

    ActivityCode.UNSUSPEND_PURCHASE_ORDER:
        "{actor_role} ({actor_email}) restored purchase order {target_name} to {status}",

    # ---------------- SITE BUDGET ----------------
    ActivityCode.CREATE_SITE_BUDGET:
        "{actor_role} ({actor_email}) created site budget {target_name}",

    ActivityCode.UPDATE_SITE_BUDGET_LINE:
        "{actor_role} ({actor_email}) updated site budget line {target_name}: {changes}",

    ActivityCode.DELETE_SITE_BUDGET:
        "{actor_role} ({actor_email}) deleted site budget {target_name}",
}
