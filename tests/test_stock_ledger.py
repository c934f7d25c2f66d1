from decimal import Decimal

import pytest
from sqlalchemy import select, func

from site_inventory.constants.error_codes import ErrorCode
from site_inventory.constants.stock_document_type import StockDocumentType
from site_inventory.core.exceptions import ValidationError
from site_inventory.models.inventory.site_item_models import SiteItem
from site_inventory.models.inventory.stock_ledger_models import StockLedger
from site_inventory.models.support.activity_models import UserActivity
from site_inventory.services.inventory.site_stock_service import (
    list_site_stock,
    list_stock_ledger,
    reconcile_site_stock,
)
from site_inventory.services.inventory.stock_ledger_service import (
    apply_issue,
    apply_receipt,
    issue_stock,
    record_movement,
    weighted_receipt,
)


def _balance(stock="0", rate="0", value="0"):
    return SiteItem(
        site_id=1,
        item_id=1,
        closing_stock=Decimal(stock),
        unit_rate=Decimal(rate),
        closing_value=Decimal(value),
    )


# =========================
# ARITHMETIC
# =========================
def test_receipts_blend_rate_by_weighted_average():
    site_item = _balance()

    apply_receipt(site_item, Decimal("10"), Decimal("5"))
    apply_receipt(site_item, Decimal("10"), Decimal("7"))

    assert site_item.closing_stock == Decimal("20")
    assert site_item.unit_rate == Decimal("6")
    assert site_item.closing_value == Decimal("120.00")


def test_receipt_into_empty_balance_takes_receipt_rate():
    site_item = _balance()

    apply_receipt(site_item, Decimal("4"), Decimal("12.5"))

    assert site_item.unit_rate == Decimal("12.5")
    assert site_item.closing_value == Decimal("50.00")


def test_zero_receipt_on_zero_stock_keeps_everything_zero():
    assert weighted_receipt(Decimal("0"), Decimal("0"), Decimal("0"), Decimal("9")) == (
        Decimal("0"),
        Decimal("0"),
        Decimal("0"),
    )


def test_issue_keeps_rate_and_recomputes_value():
    site_item = _balance("20", "6", "120")

    apply_issue(site_item, Decimal("5"))

    assert site_item.closing_stock == Decimal("15")
    assert site_item.unit_rate == Decimal("6")
    assert site_item.closing_value == Decimal("90.00")


def test_issue_floors_stock_at_zero():
    site_item = _balance("5", "6", "30")

    apply_issue(site_item, Decimal("8"))

    assert site_item.closing_stock == Decimal("0")
    assert site_item.closing_value == Decimal("0")
    assert site_item.unit_rate == Decimal("6")


@pytest.mark.parametrize(
    "received, issued",
    [(Decimal("0"), Decimal("0")), (Decimal("-1"), Decimal("0")), (Decimal("0"), Decimal("-2"))],
)
def test_record_movement_rejects_empty_or_negative_quantities(received, issued):
    with pytest.raises(ValidationError) as exc:
        record_movement(
            None,
            site_id=1,
            item_id=1,
            received_qty=received,
            issued_qty=issued,
            document_type=StockDocumentType.STOCK_ADJUSTMENT,
            document_id=1,
        )
    assert exc.value.error_code == ErrorCode.STOCK_INVALID_MOVEMENT


# =========================
# PERSISTED MOVEMENTS
# =========================
async def test_movements_write_ledger_rows_and_activity(db, seed, site_a, cement, store_keeper):
    site_item = await seed(db, site=site_a, item=cement, qty=10, rate=5, actor=store_keeper)
    await seed(db, site=site_a, item=cement, qty=10, rate=7, actor=store_keeper)

    rate = await issue_stock(
        db,
        site_item=site_item,
        qty=Decimal("4"),
        document_type=StockDocumentType.STOCK_ADJUSTMENT,
        document_id=99,
        actor=store_keeper,
    )
    await db.commit()

    assert rate == Decimal("6")
    assert site_item.closing_stock == Decimal("16")
    assert site_item.closing_value == Decimal("96.00")

    rows = (
        await db.execute(
            select(StockLedger)
            .where(StockLedger.site_id == site_a.id)
            .order_by(StockLedger.id)
        )
    ).scalars().all()
    assert [(r.received_qty, r.issued_qty) for r in rows] == [
        (Decimal("10"), Decimal("0")),
        (Decimal("10"), Decimal("0")),
        (Decimal("0"), Decimal("4")),
    ]
    assert rows[-1].unit_rate == Decimal("6")

    activities = await db.scalar(
        select(func.count()).select_from(UserActivity).where(
            UserActivity.activity_code == "STOCK_MOVEMENT"
        )
    )
    assert activities == 3


async def test_issue_beyond_closing_stock_is_rejected(db, seed, site_a, cement, store_keeper):
    site_item = await seed(db, site=site_a, item=cement, qty=3, rate=5, actor=store_keeper)

    with pytest.raises(ValidationError) as exc:
        await issue_stock(
            db,
            site_item=site_item,
            qty=Decimal("3.5"),
            document_type=StockDocumentType.STOCK_ADJUSTMENT,
            document_id=1,
            actor=store_keeper,
        )

    assert exc.value.error_code == ErrorCode.STOCK_INSUFFICIENT
    assert site_item.closing_stock == Decimal("3")


# =========================
# READS / RECONCILIATION
# =========================
async def test_site_stock_listing(db, seed, site_a, cement, steel, store_keeper):
    await seed(db, site=site_a, item=cement, qty=10, rate=5, actor=store_keeper)
    await seed(db, site=site_a, item=steel, qty=250, rate=62, actor=store_keeper)

    page = await list_site_stock(
        db, site_a.id, search="tmt", in_stock_only=True, page=1, page_size=20
    )

    assert page.total == 1
    assert page.items[0].item_id == steel.id
    assert page.items[0].closing_stock == Decimal("250")

    ledger = await list_stock_ledger(db, site_id=site_a.id, item_id=None, page=1, page_size=20)
    assert ledger.total == 2


async def test_reconciliation_reports_drift_without_fixing_it(db, seed, site_a, cement, store_keeper):
    site_item = await seed(db, site=site_a, item=cement, qty=10, rate=5, actor=store_keeper)

    clean = await reconcile_site_stock(db, site_a.id)
    assert clean.items_checked == 1
    assert clean.drifts == []

    site_item.closing_stock = Decimal("12")
    await db.commit()

    report = await reconcile_site_stock(db, site_a.id)

    assert len(report.drifts) == 1
    drift = report.drifts[0]
    assert drift.item_id == cement.id
    assert drift.ledger_qty == Decimal("10")
    assert drift.difference == Decimal("2")

    stored = await db.scalar(
        select(SiteItem.closing_stock).where(SiteItem.id == site_item.id)
    )
    assert stored == Decimal("12")
