import re
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select

from site_inventory.constants.error_codes import ErrorCode
from site_inventory.core.exceptions import (
    AuthorizationError,
    ConflictError,
    ValidationError,
)
from site_inventory.models.enums.purchase_order_status import PurchaseOrderStatus
from site_inventory.models.procurement.indent_models import Indent, IndentItem
from site_inventory.models.procurement.purchase_order_models import PurchaseOrder
from site_inventory.schemas.procurement.purchase_order_schemas import (
    PurchaseOrderApproveSchema,
    PurchaseOrderCreateSchema,
)
from site_inventory.services.procurement import purchase_order_service
from site_inventory.services.procurement.po_numbering import (
    financial_year_info,
    parse_sequence,
)
from site_inventory.services.procurement.purchase_order_service import (
    approve_purchase_order_level1,
    approve_purchase_order_level2,
    complete_purchase_order,
    create_purchase_order,
    suspend_purchase_order,
    unsuspend_purchase_order,
)

PO_NUMBER = re.compile(r"^DCTPL/\d{2}-\d{2}/[A-Z0-9]+/\d{5}$")
TODAY = date(2025, 6, 15)


def _payload(site, item, amount="50000", qty="10", rate="5000", **extra):
    return PurchaseOrderCreateSchema(
        site_id=site.id,
        purchase_order_date=TODAY,
        amount=Decimal(amount),
        details=[
            {
                "item_id": item.id,
                "qty": Decimal(qty),
                "rate": Decimal(rate),
                "amount": Decimal(amount),
            }
        ],
        **extra,
    )


# =========================
# NUMBERING
# =========================
@pytest.mark.parametrize(
    "today, label, start, end",
    [
        (date(2025, 3, 31), "24-25", date(2024, 4, 1), date(2025, 3, 31)),
        (date(2025, 4, 1), "25-26", date(2025, 4, 1), date(2026, 3, 31)),
        (date(2099, 12, 1), "99-00", date(2099, 4, 1), date(2100, 3, 31)),
    ],
)
def test_financial_year_starts_in_april(today, label, start, end):
    fy = financial_year_info(today)
    assert (fy.label, fy.start_date, fy.end_date) == (label, start, end)


def test_parse_sequence_ignores_foreign_suffix():
    prefix = "DCTPL/25-26/SITEA/"
    assert parse_sequence("DCTPL/25-26/SITEA/00042", prefix) == 42
    assert parse_sequence("DCTPL/25-26/SITEA/00042-R", prefix) == 0


async def test_consecutive_numbers_for_same_site(db, site_a, cement, purchaser):
    first = await create_purchase_order(db, _payload(site_a, cement), purchaser, today=TODAY)
    second = await create_purchase_order(db, _payload(site_a, cement), purchaser, today=TODAY)

    assert PO_NUMBER.match(first.purchase_order_no)
    assert first.purchase_order_no == "DCTPL/25-26/SITEA/00001"
    assert second.purchase_order_no == "DCTPL/25-26/SITEA/00002"


async def test_sequences_are_per_site(db, site_a, site_b, cement, purchaser):
    await create_purchase_order(db, _payload(site_a, cement), purchaser, today=TODAY)
    other = await create_purchase_order(db, _payload(site_b, cement), purchaser, today=TODAY)

    assert other.purchase_order_no == "DCTPL/25-26/SITEB/00001"


async def test_missing_site_code_is_a_distinct_error(db, site_without_code, cement, purchaser):
    with pytest.raises(ValidationError) as exc:
        await create_purchase_order(db, _payload(site_without_code, cement), purchaser, today=TODAY)

    assert exc.value.error_code == ErrorCode.SITE_CODE_MISSING


def _existing_po(site, number, po_date=TODAY):
    return PurchaseOrder(
        purchase_order_no=number,
        purchase_order_date=po_date,
        site_id=site.id,
        amount=Decimal("0"),
        approval_status=PurchaseOrderStatus.DRAFT,
    )


async def test_backdated_order_does_not_block_numbering(db, site_a, cement, purchaser):
    backdated = _payload(site_a, cement).model_copy(
        update={"purchase_order_date": date(2025, 3, 20)}
    )
    first = await create_purchase_order(db, backdated, purchaser, today=TODAY)
    second = await create_purchase_order(db, _payload(site_a, cement), purchaser, today=TODAY)

    assert first.purchase_order_no == "DCTPL/25-26/SITEA/00001"
    assert second.purchase_order_no == "DCTPL/25-26/SITEA/00002"


async def test_sequence_continues_past_five_digits(db, site_a, cement, purchaser):
    db.add_all(
        [
            _existing_po(site_a, "DCTPL/25-26/SITEA/99999"),
            _existing_po(site_a, "DCTPL/25-26/SITEA/100000"),
        ]
    )
    await db.commit()

    po = await create_purchase_order(db, _payload(site_a, cement), purchaser, today=TODAY)

    assert po.purchase_order_no == "DCTPL/25-26/SITEA/100001"


async def test_number_collision_exhausts_retries(db, monkeypatch, site_a, cement, purchaser):
    db.add(_existing_po(site_a, "DCTPL/25-26/SITEA/00001"))
    await db.commit()

    async def same_number(*args, **kwargs):
        return "DCTPL/25-26/SITEA/00001"

    monkeypatch.setattr(purchase_order_service, "generate_po_number", same_number)

    with pytest.raises(ConflictError) as exc:
        await create_purchase_order(db, _payload(site_a, cement), purchaser, today=TODAY)

    assert exc.value.error_code == ErrorCode.PO_NUMBER_CONFLICT


# =========================
# CREATE
# =========================
async def test_create_copies_lines_and_links_indent(db, site_a, cement, steel, purchaser):
    indent = Indent(indent_no="IND-001", indent_date=TODAY, site_id=site_a.id)
    db.add(indent)
    await db.flush()
    indent_item = IndentItem(indent_id=indent.id, item_id=cement.id, qty=Decimal("10"))
    db.add(indent_item)
    await db.commit()

    payload = PurchaseOrderCreateSchema(
        site_id=site_a.id,
        indent_id=indent.id,
        purchase_order_date=TODAY,
        amount=Decimal("1250"),
        details=[
            {"item_id": cement.id, "qty": "10", "rate": "100", "indent_item_id": indent_item.id},
            {"item_id": steel.id, "qty": "5", "rate": "50"},
        ],
    )
    po = await create_purchase_order(db, payload, purchaser, today=TODAY)

    assert po.approval_status == PurchaseOrderStatus.DRAFT
    assert [d.serial_no for d in po.details] == [1, 2]
    assert po.details[0].ordered_qty == Decimal("10")
    assert po.created_by_id == purchaser.id

    linked = await db.scalar(
        select(IndentItem.purchase_order_detail_id).where(IndentItem.id == indent_item.id)
    )
    assert linked == po.details[0].id


async def test_budget_check_blocks_over_budget_lines(db, monkeypatch, site_a, cement, purchaser, manager):
    from site_inventory.schemas.budget.site_budget_schemas import SiteBudgetCreate
    from site_inventory.services.budget.site_budget_service import create_site_budget

    await create_site_budget(
        db,
        SiteBudgetCreate(
            site_id=site_a.id,
            details=[{"items": [{"item_id": cement.id, "budget_qty": "8", "budget_rate": "5000"}]}],
        ),
        manager,
    )
    monkeypatch.setattr(purchase_order_service, "APPLY_BUDGET_VALIDATION", True)

    with pytest.raises(ValidationError) as exc:
        await create_purchase_order(db, _payload(site_a, cement), purchaser, today=TODAY)

    assert exc.value.error_code == ErrorCode.PO_BUDGET_EXCEEDED
    assert exc.value.details["items"][0]["item_id"] == cement.id


# =========================
# APPROVAL LADDER
# =========================
async def test_small_order_is_auto_approved_to_level_two(db, site_a, cement, purchaser, manager):
    po = await create_purchase_order(db, _payload(site_a, cement, amount="50000"), purchaser, today=TODAY)

    approved = await approve_purchase_order_level1(db, po.id, manager)

    assert approved.approval_status == PurchaseOrderStatus.APPROVED_LEVEL_2
    assert approved.approved1_by_id == manager.id
    assert approved.approved2_by_id == manager.id
    assert approved.details[0].approved1_qty == Decimal("10")
    assert approved.details[0].approved2_qty == Decimal("10")


async def test_large_order_needs_a_second_approver(db, site_a, cement, purchaser, manager, director):
    po = await create_purchase_order(
        db, _payload(site_a, cement, amount="250000", rate="25000"), purchaser, today=TODAY
    )

    level1 = await approve_purchase_order_level1(
        db,
        po.id,
        manager,
        PurchaseOrderApproveSchema(details=[{"detail_id": po.details[0].id, "qty": "8"}]),
    )
    assert level1.approval_status == PurchaseOrderStatus.APPROVED_LEVEL_1
    assert level1.details[0].approved1_qty == Decimal("8")
    assert level1.details[0].approved2_qty is None

    with pytest.raises(AuthorizationError):
        await approve_purchase_order_level2(db, po.id, manager)

    level2 = await approve_purchase_order_level2(db, po.id, director)
    assert level2.approval_status == PurchaseOrderStatus.APPROVED_LEVEL_2
    assert level2.details[0].approved2_qty == Decimal("8")


async def test_director_approval_skips_level_two(db, site_a, cement, purchaser, director):
    po = await create_purchase_order(
        db, _payload(site_a, cement, amount="250000", rate="25000"), purchaser, today=TODAY
    )

    approved = await approve_purchase_order_level1(db, po.id, director)

    assert approved.approval_status == PurchaseOrderStatus.APPROVED_LEVEL_2


async def test_creator_cannot_approve(db, site_a, cement, purchaser):
    po = await create_purchase_order(db, _payload(site_a, cement), purchaser, today=TODAY)

    with pytest.raises(AuthorizationError) as exc:
        await approve_purchase_order_level1(db, po.id, purchaser)

    assert exc.value.error_code == ErrorCode.PO_SELF_APPROVAL


async def test_approved_quantity_cannot_exceed_ordered(db, site_a, cement, purchaser, manager):
    po = await create_purchase_order(db, _payload(site_a, cement), purchaser, today=TODAY)

    with pytest.raises(ValidationError) as exc:
        await approve_purchase_order_level1(
            db,
            po.id,
            manager,
            PurchaseOrderApproveSchema(details=[{"detail_id": po.details[0].id, "qty": "11"}]),
        )

    assert exc.value.error_code == ErrorCode.PO_INVALID_LINES


async def test_complete_suspend_and_restore(db, site_a, cement, purchaser, manager):
    po = await create_purchase_order(db, _payload(site_a, cement), purchaser, today=TODAY)

    with pytest.raises(ValidationError):
        await complete_purchase_order(db, po.id, manager)

    await approve_purchase_order_level1(db, po.id, manager)

    suspended = await suspend_purchase_order(db, po.id, manager)
    assert suspended.approval_status == PurchaseOrderStatus.SUSPENDED

    with pytest.raises(ValidationError):
        await suspend_purchase_order(db, po.id, manager)

    restored = await unsuspend_purchase_order(db, po.id, manager)
    assert restored.approval_status == PurchaseOrderStatus.APPROVED_LEVEL_2
    assert restored.suspended_at is None

    completed = await complete_purchase_order(db, po.id, purchaser)
    assert completed.approval_status == PurchaseOrderStatus.COMPLETED

    with pytest.raises(ValidationError):
        await suspend_purchase_order(db, po.id, manager)


async def test_unsuspend_draft_returns_to_draft(db, site_a, cement, purchaser, manager):
    po = await create_purchase_order(db, _payload(site_a, cement), purchaser, today=TODAY)

    await suspend_purchase_order(db, po.id, manager)
    restored = await unsuspend_purchase_order(db, po.id, manager)

    assert restored.approval_status == PurchaseOrderStatus.DRAFT
