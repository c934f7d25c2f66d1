from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select, func

from site_inventory.constants.error_codes import ErrorCode
from site_inventory.constants.stock_document_type import StockDocumentType
from site_inventory.core.exceptions import AuthorizationError, ValidationError
from site_inventory.models.enums.challan_status import ChallanStatus
from site_inventory.models.inventory.outward_challan_models import OutwardDeliveryChallan
from site_inventory.models.inventory.site_item_models import SiteItem, SiteItemBatch
from site_inventory.models.inventory.stock_ledger_models import StockLedger
from site_inventory.schemas.inventory.outward_challan_schemas import (
    ChallanAcceptSchema,
    ChallanApproveSchema,
    OutwardChallanCreateSchema,
)
from site_inventory.services.inventory.outward_challan_service import (
    accept_challan,
    approve_challan,
    create_outward_challan,
    list_outward_challans,
    next_challan_number,
)
from site_inventory.services.inventory.stock_ledger_service import (
    get_or_create_site_item,
    issue_stock,
)

EXPIRY = date(2027, 1, 31)


def _create_payload(from_site, to_site, lines, **extra):
    return OutwardChallanCreateSchema(
        outward_challan_date=date(2025, 7, 1),
        from_site_id=from_site.id,
        to_site_id=to_site.id,
        details=lines,
        **extra,
    )


def _approve(challan, *qtys):
    return ChallanApproveSchema(
        details=[
            {"detail_id": line.id, "approved1_qty": qty}
            for line, qty in zip(challan.details, qtys)
        ]
    )


def _accept(challan, *rows):
    details = []
    for line, row in zip(challan.details, rows):
        if isinstance(row, dict):
            details.append({"detail_id": line.id, **row})
        else:
            details.append({"detail_id": line.id, "received_qty": row})
    return ChallanAcceptSchema(details=details)


async def _balance(db, site_id, item_id):
    return await db.scalar(
        select(SiteItem)
        .where(SiteItem.site_id == site_id, SiteItem.item_id == item_id)
        .execution_options(populate_existing=True)
    )


async def _ledger_count(db):
    return await db.scalar(select(func.count()).select_from(StockLedger))


# =========================
# NUMBERING
# =========================
@pytest.mark.parametrize(
    "latest, expected",
    [
        (None, "0001-0001"),
        ("0001-0041", "0001-0042"),
        ("0003-9999", "0004-0001"),
        ("MANUAL/7", "0001-0001"),
    ],
)
def test_next_challan_number(latest, expected):
    assert next_challan_number(latest) == expected


async def test_generated_numbers_follow_latest(db, site_a, site_b, cement, store_keeper):
    first = await create_outward_challan(
        db,
        _create_payload(site_a, site_b, [{"item_id": cement.id, "challan_qty": 5}]),
        store_keeper,
    )
    second = await create_outward_challan(
        db,
        _create_payload(site_a, site_b, [{"item_id": cement.id, "challan_qty": 5}]),
        store_keeper,
    )

    assert first.outward_challan_no == "0001-0001"
    assert second.outward_challan_no == "0001-0002"
    assert first.status == ChallanStatus.draft
    assert first.details[0].challan_qty == Decimal("5")


async def test_create_rejects_same_source_and_destination(db, site_a, cement, store_keeper):
    with pytest.raises(ValidationError) as exc:
        await create_outward_challan(
            db,
            _create_payload(site_a, site_a, [{"item_id": cement.id, "challan_qty": 1}]),
            store_keeper,
        )
    assert exc.value.error_code == ErrorCode.ODC_INVALID_SITE


async def test_create_rejects_batches_on_untracked_item(db, site_a, site_b, cement, store_keeper):
    line = {
        "item_id": cement.id,
        "challan_qty": 2,
        "batches": [{"batch_number": "B1", "expiry_date": EXPIRY, "qty": 2}],
    }
    with pytest.raises(ValidationError) as exc:
        await create_outward_challan(db, _create_payload(site_a, site_b, [line]), store_keeper)
    assert exc.value.error_code == ErrorCode.BATCH_NOT_ALLOWED


# =========================
# APPROVE
# =========================
async def test_creator_cannot_approve(db, seed, site_a, site_b, cement, store_keeper):
    await seed(db, site=site_a, item=cement, qty=100, rate=10, actor=store_keeper)
    challan = await create_outward_challan(
        db,
        _create_payload(site_a, site_b, [{"item_id": cement.id, "challan_qty": 30}]),
        store_keeper,
    )

    with pytest.raises(AuthorizationError) as exc:
        await approve_challan(db, challan.id, store_keeper, _approve(challan, 30))

    assert exc.value.error_code == ErrorCode.ODC_SELF_APPROVAL
    header = await db.get(OutwardDeliveryChallan, challan.id)
    assert header.status == ChallanStatus.draft


async def test_approve_rejects_quantity_above_stock(db, seed, site_a, site_b, cement, store_keeper, manager):
    await seed(db, site=site_a, item=cement, qty=20, rate=10, actor=store_keeper)
    challan = await create_outward_challan(
        db,
        _create_payload(site_a, site_b, [{"item_id": cement.id, "challan_qty": 30}]),
        store_keeper,
    )

    with pytest.raises(ValidationError) as exc:
        await approve_challan(db, challan.id, manager, _approve(challan, 30))

    assert exc.value.error_code == ErrorCode.STOCK_INSUFFICIENT


async def test_approve_checks_summed_quantity_of_repeated_item(
    db, seed, site_a, site_b, cement, store_keeper, manager
):
    await seed(db, site=site_a, item=cement, qty=20, rate=10, actor=store_keeper)
    challan = await create_outward_challan(
        db,
        _create_payload(
            site_a,
            site_b,
            [
                {"item_id": cement.id, "challan_qty": 12},
                {"item_id": cement.id, "challan_qty": 12},
            ],
        ),
        store_keeper,
    )

    with pytest.raises(ValidationError) as exc:
        await approve_challan(db, challan.id, manager, _approve(challan, 12, 12))

    assert exc.value.error_code == ErrorCode.STOCK_INSUFFICIENT


async def test_approve_requires_every_line(db, seed, site_a, site_b, cement, steel, store_keeper, manager):
    await seed(db, site=site_a, item=cement, qty=20, rate=10, actor=store_keeper)
    await seed(db, site=site_a, item=steel, qty=20, rate=60, actor=store_keeper)
    challan = await create_outward_challan(
        db,
        _create_payload(
            site_a,
            site_b,
            [
                {"item_id": cement.id, "challan_qty": 5},
                {"item_id": steel.id, "challan_qty": 5},
            ],
        ),
        store_keeper,
    )

    with pytest.raises(ValidationError) as exc:
        await approve_challan(db, challan.id, manager, _approve(challan, 5))

    assert exc.value.error_code == ErrorCode.ODC_INVALID_LINES


async def test_approve_rejects_zero_quantity(db, seed, site_a, site_b, cement, store_keeper, manager):
    await seed(db, site=site_a, item=cement, qty=20, rate=10, actor=store_keeper)
    challan = await create_outward_challan(
        db,
        _create_payload(site_a, site_b, [{"item_id": cement.id, "challan_qty": 5}]),
        store_keeper,
    )

    with pytest.raises(ValidationError) as exc:
        await approve_challan(db, challan.id, manager, _approve(challan, 0))

    assert exc.value.error_code == ErrorCode.ODC_INVALID_LINES


async def test_approve_fixes_quantities(db, seed, site_a, site_b, cement, store_keeper, manager):
    await seed(db, site=site_a, item=cement, qty=100, rate=10, actor=store_keeper)
    challan = await create_outward_challan(
        db,
        _create_payload(site_a, site_b, [{"item_id": cement.id, "challan_qty": 30}]),
        store_keeper,
    )

    approved = await approve_challan(db, challan.id, manager, _approve(challan, 25))

    assert approved.status == ChallanStatus.approved
    assert approved.is_approved1 is True
    assert approved.approved1_by_id == manager.id
    assert approved.details[0].approved1_qty == Decimal("25")
    assert approved.details[0].qty == Decimal("25")
    assert approved.details[0].challan_qty == Decimal("30")

    with pytest.raises(ValidationError) as exc:
        await approve_challan(db, challan.id, manager, _approve(challan, 25))
    assert exc.value.error_code == ErrorCode.ODC_INVALID_STATUS


# =========================
# ACCEPT
# =========================
async def _approved_challan(db, site_a, site_b, lines, creator, approver, qtys):
    challan = await create_outward_challan(db, _create_payload(site_a, site_b, lines), creator)
    return await approve_challan(db, challan.id, approver, _approve(challan, *qtys))


async def test_accept_before_approval_is_rejected(db, seed, site_a, site_b, cement, store_keeper, engineer):
    await seed(db, site=site_a, item=cement, qty=100, rate=10, actor=store_keeper)
    challan = await create_outward_challan(
        db,
        _create_payload(site_a, site_b, [{"item_id": cement.id, "challan_qty": 30}]),
        store_keeper,
    )

    with pytest.raises(ValidationError) as exc:
        await accept_challan(db, challan.id, engineer, _accept(challan, 30))

    assert exc.value.error_code == ErrorCode.ODC_INVALID_STATUS


async def test_creator_and_approver_cannot_accept(
    db, seed, site_a, site_b, cement, store_keeper, manager
):
    await seed(db, site=site_a, item=cement, qty=100, rate=10, actor=store_keeper)
    challan = await _approved_challan(
        db, site_a, site_b, [{"item_id": cement.id, "challan_qty": 30}], store_keeper, manager, [30]
    )

    for actor in (store_keeper, manager):
        with pytest.raises(AuthorizationError) as exc:
            await accept_challan(db, challan.id, actor, _accept(challan, 30))
        assert exc.value.error_code == ErrorCode.ODC_SELF_APPROVAL


async def test_accept_moves_stock_between_sites(
    db, seed, site_a, site_b, cement, store_keeper, manager, engineer
):
    await seed(db, site=site_a, item=cement, qty=100, rate=10, actor=store_keeper)
    challan = await _approved_challan(
        db, site_a, site_b, [{"item_id": cement.id, "challan_qty": 30}], store_keeper, manager, [25]
    )

    accepted = await accept_challan(db, challan.id, engineer, _accept(challan, 25))

    assert accepted.status == ChallanStatus.accepted
    assert accepted.is_accepted is True
    assert accepted.accepted_by_id == engineer.id
    assert accepted.details[0].received_qty == Decimal("25")

    source = await _balance(db, site_a.id, cement.id)
    assert source.closing_stock == Decimal("75")
    assert source.unit_rate == Decimal("10")
    assert source.closing_value == Decimal("750.00")

    destination = await _balance(db, site_b.id, cement.id)
    assert destination.closing_stock == Decimal("25")
    assert destination.unit_rate == Decimal("10")
    assert destination.closing_value == Decimal("250.00")

    rows = (
        await db.execute(
            select(StockLedger).where(
                StockLedger.document_type == StockDocumentType.OUTWARD_DELIVERY_CHALLAN,
                StockLedger.document_id == challan.id,
            )
        )
    ).scalars().all()
    by_site = {r.site_id: r for r in rows}
    assert by_site[site_a.id].issued_qty == Decimal("25")
    assert by_site[site_b.id].received_qty == Decimal("25")


async def test_destination_rate_is_blended(
    db, seed, site_a, site_b, cement, store_keeper, manager, engineer
):
    await seed(db, site=site_a, item=cement, qty=100, rate=10, actor=store_keeper)
    await seed(db, site=site_b, item=cement, qty=10, rate=20, actor=store_keeper)
    challan = await _approved_challan(
        db, site_a, site_b, [{"item_id": cement.id, "challan_qty": 25}], store_keeper, manager, [25]
    )

    await accept_challan(db, challan.id, engineer, _accept(challan, 25))

    destination = await _balance(db, site_b.id, cement.id)
    assert destination.closing_stock == Decimal("35")
    assert destination.unit_rate == Decimal("12.8571")
    assert destination.closing_value == Decimal("450.00")


async def test_accept_moves_stored_batches(
    db, seed, site_a, site_b, admixture, store_keeper, manager, engineer
):
    await seed(
        db, site=site_a, item=admixture, qty=40, rate=80, actor=store_keeper,
        batch_number="ADM-24-07", expiry_date=EXPIRY,
    )
    line = {
        "item_id": admixture.id,
        "challan_qty": 15,
        "batches": [{"batch_number": "ADM-24-07", "expiry_date": EXPIRY, "qty": 15}],
    }
    challan = await _approved_challan(db, site_a, site_b, [line], store_keeper, manager, [15])

    await accept_challan(db, challan.id, engineer, _accept(challan, 15))

    batches = (
        await db.execute(
            select(SiteItemBatch)
            .where(SiteItemBatch.batch_number == "ADM-24-07")
            .execution_options(populate_existing=True)
        )
    ).scalars().all()
    by_site = {b.site_id: b for b in batches}

    assert by_site[site_a.id].closing_qty == Decimal("25")
    assert by_site[site_b.id].closing_qty == Decimal("15")
    assert by_site[site_b.id].expiry_date == EXPIRY
    # unit_rate 0 on the challan falls back to the source batch rate
    assert by_site[site_b.id].unit_rate == Decimal("80")


async def test_batch_sum_failure_leaves_everything_untouched(
    db, seed, site_a, site_b, cement, admixture, steel, store_keeper, manager, engineer
):
    await seed(db, site=site_a, item=cement, qty=100, rate=10, actor=store_keeper)
    await seed(db, site=site_a, item=steel, qty=100, rate=60, actor=store_keeper)
    await seed(
        db, site=site_a, item=admixture, qty=40, rate=80, actor=store_keeper,
        batch_number="ADM-24-07", expiry_date=EXPIRY,
    )
    lines = [
        {"item_id": cement.id, "challan_qty": 10},
        {"item_id": admixture.id, "challan_qty": 5},
        {"item_id": steel.id, "challan_qty": 10},
    ]
    challan = await _approved_challan(db, site_a, site_b, lines, store_keeper, manager, [10, 5, 10])
    ledger_before = await _ledger_count(db)

    payload = _accept(
        challan,
        10,
        {
            "received_qty": 5,
            "batches": [{"batch_number": "ADM-24-07", "expiry_date": EXPIRY, "qty": 4}],
        },
        10,
    )
    with pytest.raises(ValidationError) as exc:
        await accept_challan(db, challan.id, engineer, payload)

    assert exc.value.error_code == ErrorCode.BATCH_QTY_MISMATCH
    assert await _ledger_count(db) == ledger_before

    cement_balance = await _balance(db, site_a.id, cement.id)
    assert cement_balance.closing_stock == Decimal("100")
    assert await _balance(db, site_b.id, cement.id) is None

    steel_balance = await _balance(db, site_a.id, steel.id)
    assert steel_balance.closing_stock == Decimal("100")
    assert await _balance(db, site_b.id, steel.id) is None

    header = await db.scalar(
        select(OutwardDeliveryChallan.status).where(OutwardDeliveryChallan.id == challan.id)
    )
    assert header == ChallanStatus.approved


async def test_accept_rechecks_stock_that_moved_after_approval(
    db, seed, site_a, site_b, cement, store_keeper, manager, engineer
):
    await seed(db, site=site_a, item=cement, qty=100, rate=10, actor=store_keeper)
    challan = await _approved_challan(
        db, site_a, site_b, [{"item_id": cement.id, "challan_qty": 30}], store_keeper, manager, [30]
    )

    # consumed elsewhere between approval and acceptance
    site_item = await get_or_create_site_item(db, site_a.id, cement.id, store_keeper)
    await issue_stock(
        db,
        site_item=site_item,
        qty=Decimal("80"),
        document_type=StockDocumentType.STOCK_ADJUSTMENT,
        document_id=0,
        actor=store_keeper,
    )
    await db.commit()

    with pytest.raises(ValidationError) as exc:
        await accept_challan(db, challan.id, engineer, _accept(challan, 30))

    assert exc.value.error_code == ErrorCode.STOCK_INSUFFICIENT
    assert (await _balance(db, site_a.id, cement.id)).closing_stock == Decimal("20")
    assert await _balance(db, site_b.id, cement.id) is None
    header = await db.scalar(
        select(OutwardDeliveryChallan.status).where(OutwardDeliveryChallan.id == challan.id)
    )
    assert header == ChallanStatus.approved


async def test_accept_rejects_expiry_mismatch(
    db, seed, site_a, site_b, admixture, store_keeper, manager, engineer
):
    await seed(
        db, site=site_a, item=admixture, qty=40, rate=80, actor=store_keeper,
        batch_number="ADM-24-07", expiry_date=EXPIRY,
    )
    challan = await _approved_challan(
        db, site_a, site_b, [{"item_id": admixture.id, "challan_qty": 5}], store_keeper, manager, [5]
    )

    payload = _accept(
        challan,
        {
            "received_qty": 5,
            "batches": [{"batch_number": "ADM-24-07", "expiry_date": date(2026, 12, 31), "qty": 5}],
        },
    )
    with pytest.raises(ValidationError) as exc:
        await accept_challan(db, challan.id, engineer, payload)

    assert exc.value.error_code == ErrorCode.BATCH_EXPIRY_MISMATCH


async def test_list_filters_by_status(db, seed, site_a, site_b, cement, store_keeper, manager):
    await seed(db, site=site_a, item=cement, qty=100, rate=10, actor=store_keeper)
    await _approved_challan(
        db, site_a, site_b, [{"item_id": cement.id, "challan_qty": 5}], store_keeper, manager, [5]
    )
    await create_outward_challan(
        db,
        _create_payload(site_a, site_b, [{"item_id": cement.id, "challan_qty": 5}]),
        store_keeper,
    )

    page = await list_outward_challans(
        db,
        status=ChallanStatus.approved,
        from_site_id=None,
        to_site_id=None,
        search=None,
        page=1,
        page_size=20,
    )

    assert page.total == 1
    assert page.items[0].status == ChallanStatus.approved
