from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select, func

from site_inventory.constants.error_codes import ErrorCode
from site_inventory.constants.stock_document_type import StockDocumentType
from site_inventory.core.exceptions import ConflictError, ValidationError
from site_inventory.models.enums.purchase_order_status import PurchaseOrderStatus
from site_inventory.models.inventory.site_item_models import SiteItem, SiteItemBatch
from site_inventory.models.inventory.stock_ledger_models import StockLedger
from site_inventory.models.procurement.purchase_order_models import (
    PurchaseOrder,
    PurchaseOrderDetail,
)
from site_inventory.schemas.inventory.inward_challan_schemas import InwardChallanCreateSchema
from site_inventory.services.inventory.inward_challan_service import (
    create_inward_challan,
    list_inward_challans,
)

RECEIVED_ON = date(2025, 7, 10)


async def _po(db, site, lines, number="DCTPL/25-26/SITEA/00001", status=PurchaseOrderStatus.APPROVED_LEVEL_2):
    """lines: (item, qty, approved2_qty, rate, amount)"""
    po = PurchaseOrder(
        purchase_order_no=number,
        purchase_order_date=date(2025, 7, 1),
        site_id=site.id,
        amount=sum((Decimal(amount) for *_, amount in lines), Decimal("0")),
        approval_status=status,
        details=[
            PurchaseOrderDetail(
                serial_no=idx,
                item_id=item.id,
                qty=Decimal(qty),
                ordered_qty=Decimal(qty),
                approved2_qty=Decimal(approved) if approved is not None else None,
                received_qty=Decimal("0"),
                rate=Decimal(rate),
                amount=Decimal(amount),
            )
            for idx, (item, qty, approved, rate, amount) in enumerate(lines, start=1)
        ],
    )
    db.add(po)
    await db.commit()
    return po


def _payload(po, details, **extra):
    return InwardChallanCreateSchema(
        purchase_order_id=po.id,
        inward_challan_date=RECEIVED_ON,
        challan_no="VC-118",
        challan_date=RECEIVED_ON,
        details=details,
        **extra,
    )


async def _balance(db, site_id, item_id):
    return await db.scalar(
        select(SiteItem)
        .where(SiteItem.site_id == site_id, SiteItem.item_id == item_id)
        .execution_options(populate_existing=True)
    )


async def _received(db, detail_id):
    return await db.scalar(
        select(PurchaseOrderDetail.received_qty).where(PurchaseOrderDetail.id == detail_id)
    )


# =========================
# RECEIPT
# =========================
async def test_receipt_blends_rate_at_landed_po_rate(db, seed, site_a, cement, store_keeper):
    await seed(db, site=site_a, item=cement, qty=10, rate=400, actor=store_keeper)
    po = await _po(db, site_a, [(cement, "10", "10", "400", "4720")])
    line = po.details[0]

    challan = await create_inward_challan(
        db,
        _payload(po, [{"purchase_order_detail_id": line.id, "receiving_qty": "10"}]),
        store_keeper,
    )

    assert challan.inward_challan_no == "0001-0001"
    assert challan.purchase_order_no == po.purchase_order_no
    assert challan.site_id == site_a.id
    assert challan.details[0].rate == Decimal("472")
    assert challan.bill_amount == Decimal("4720.00")

    balance = await _balance(db, site_a.id, cement.id)
    assert balance.closing_stock == Decimal("20")
    assert balance.unit_rate == Decimal("436")
    assert balance.closing_value == Decimal("8720.00")

    row = await db.scalar(
        select(StockLedger).where(
            StockLedger.document_type == StockDocumentType.INWARD_DELIVERY_CHALLAN,
            StockLedger.document_id == challan.id,
        )
    )
    assert (row.received_qty, row.unit_rate) == (Decimal("10"), Decimal("472"))
    assert await _received(db, line.id) == Decimal("10")


async def test_receipt_creates_balance_for_new_item(db, site_a, steel, store_keeper):
    po = await _po(db, site_a, [(steel, "500", None, "62.5", "0")])

    await create_inward_challan(
        db,
        _payload(po, [{"purchase_order_detail_id": po.details[0].id, "receiving_qty": "200"}]),
        store_keeper,
    )

    balance = await _balance(db, site_a.id, steel.id)
    assert balance.closing_stock == Decimal("200")
    assert balance.unit_rate == Decimal("62.5")


async def test_partial_receipts_stop_at_approved_quantity(db, site_a, cement, store_keeper):
    po = await _po(db, site_a, [(cement, "10", "8", "400", "4000")])
    line_id = po.details[0].id

    await create_inward_challan(
        db, _payload(po, [{"purchase_order_detail_id": line_id, "receiving_qty": "5"}]), store_keeper
    )

    with pytest.raises(ValidationError) as exc:
        await create_inward_challan(
            db, _payload(po, [{"purchase_order_detail_id": line_id, "receiving_qty": "4"}]), store_keeper
        )

    assert exc.value.error_code == ErrorCode.IDC_OVER_RECEIPT
    assert await _received(db, line_id) == Decimal("5")
    assert (await _balance(db, site_a.id, cement.id)).closing_stock == Decimal("5")


async def test_split_lines_are_summed_before_the_pending_check(db, site_a, cement, store_keeper):
    po = await _po(db, site_a, [(cement, "10", "8", "400", "4000")])
    line_id = po.details[0].id

    with pytest.raises(ValidationError) as exc:
        await create_inward_challan(
            db,
            _payload(
                po,
                [
                    {"purchase_order_detail_id": line_id, "receiving_qty": "5"},
                    {"purchase_order_detail_id": line_id, "receiving_qty": "5"},
                ],
            ),
            store_keeper,
        )

    assert exc.value.error_code == ErrorCode.IDC_OVER_RECEIPT
    assert await _balance(db, site_a.id, cement.id) is None


async def test_unapproved_order_cannot_be_received(db, site_a, cement, store_keeper):
    po = await _po(db, site_a, [(cement, "10", None, "400", "4000")], status=PurchaseOrderStatus.APPROVED_LEVEL_1)

    with pytest.raises(ValidationError) as exc:
        await create_inward_challan(
            db,
            _payload(po, [{"purchase_order_detail_id": po.details[0].id, "receiving_qty": "1"}]),
            store_keeper,
        )

    assert exc.value.error_code == ErrorCode.PO_INVALID_STATUS


async def test_line_from_another_order_is_rejected(db, site_a, cement, store_keeper):
    po = await _po(db, site_a, [(cement, "10", "10", "400", "4000")])
    other = await _po(db, site_a, [(cement, "10", "10", "400", "4000")], number="DCTPL/25-26/SITEA/00002")

    with pytest.raises(ValidationError) as exc:
        await create_inward_challan(
            db,
            _payload(po, [{"purchase_order_detail_id": other.details[0].id, "receiving_qty": "1"}]),
            store_keeper,
        )

    assert exc.value.error_code == ErrorCode.IDC_INVALID_LINES


async def test_hand_typed_number_must_be_unique(db, site_a, cement, store_keeper):
    po = await _po(db, site_a, [(cement, "10", "10", "400", "4000")])
    line_id = po.details[0].id

    await create_inward_challan(
        db,
        _payload(po, [{"purchase_order_detail_id": line_id, "receiving_qty": "1"}], inward_challan_no="GATE-7"),
        store_keeper,
    )

    with pytest.raises(ConflictError) as exc:
        await create_inward_challan(
            db,
            _payload(po, [{"purchase_order_detail_id": line_id, "receiving_qty": "1"}], inward_challan_no="GATE-7"),
            store_keeper,
        )

    assert exc.value.error_code == ErrorCode.IDC_DUPLICATE_NUMBER


# =========================
# BATCHES
# =========================
async def test_batches_are_received_into_site_batches(db, site_a, admixture, store_keeper):
    po = await _po(db, site_a, [(admixture, "6", "6", "150", "900")])

    await create_inward_challan(
        db,
        _payload(
            po,
            [
                {
                    "purchase_order_detail_id": po.details[0].id,
                    "receiving_qty": "6",
                    "batches": [
                        {"batch_number": "PL-01", "expiry_date": "2026-12-31", "qty": "4"},
                        {"batch_number": "PL-02", "expiry_date": "2027-03-31", "qty": "2"},
                    ],
                }
            ],
        ),
        store_keeper,
    )

    batches = (
        await db.execute(
            select(SiteItemBatch)
            .where(SiteItemBatch.site_id == site_a.id, SiteItemBatch.item_id == admixture.id)
            .order_by(SiteItemBatch.batch_number)
        )
    ).scalars().all()
    assert [(b.batch_number, b.closing_qty, b.unit_rate) for b in batches] == [
        ("PL-01", Decimal("4"), Decimal("150")),
        ("PL-02", Decimal("2"), Decimal("150")),
    ]


async def test_batch_total_must_match_receiving_qty(db, site_a, admixture, store_keeper):
    po = await _po(db, site_a, [(admixture, "6", "6", "150", "900")])
    before = await db.scalar(select(func.count()).select_from(StockLedger))

    with pytest.raises(ValidationError) as exc:
        await create_inward_challan(
            db,
            _payload(
                po,
                [
                    {
                        "purchase_order_detail_id": po.details[0].id,
                        "receiving_qty": "6",
                        "batches": [{"batch_number": "PL-01", "qty": "5"}],
                    }
                ],
            ),
            store_keeper,
        )

    assert exc.value.error_code == ErrorCode.BATCH_QTY_MISMATCH
    assert await db.scalar(select(func.count()).select_from(StockLedger)) == before


async def test_batches_on_untracked_item_are_rejected(db, site_a, cement, store_keeper):
    po = await _po(db, site_a, [(cement, "10", "10", "400", "4000")])

    with pytest.raises(ValidationError) as exc:
        await create_inward_challan(
            db,
            _payload(
                po,
                [
                    {
                        "purchase_order_detail_id": po.details[0].id,
                        "receiving_qty": "2",
                        "batches": [{"batch_number": "X", "qty": "2"}],
                    }
                ],
            ),
            store_keeper,
        )

    assert exc.value.error_code == ErrorCode.BATCH_NOT_ALLOWED


async def test_list_filters_by_purchase_order(db, site_a, cement, store_keeper):
    po = await _po(db, site_a, [(cement, "10", "10", "400", "4000")])
    other = await _po(db, site_a, [(cement, "10", "10", "400", "4000")], number="DCTPL/25-26/SITEA/00002")

    await create_inward_challan(
        db, _payload(po, [{"purchase_order_detail_id": po.details[0].id, "receiving_qty": "1"}]), store_keeper
    )
    await create_inward_challan(
        db, _payload(other, [{"purchase_order_detail_id": other.details[0].id, "receiving_qty": "1"}]), store_keeper
    )

    page = await list_inward_challans(db, purchase_order_id=other.id)

    assert page.total == 1
    assert page.items[0].purchase_order_id == other.id
    assert page.items[0].inward_challan_no == "0001-0002"
