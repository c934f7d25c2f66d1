"""Stock ledger and site balances.

Every stock change is one append-only ``StockLedger`` row plus an in-place
update of the matching ``SiteItem`` (and ``SiteItemBatch`` for expiry-tracked
items). Receipts blend the unit rate by weighted average; issues keep the
rate and floor the stock at zero.

Nothing here commits. Callers own the transaction.
"""

import logging
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import select, tuple_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import noload

from site_inventory.constants.activity_codes import ActivityCode
from site_inventory.constants.error_codes import ErrorCode
from site_inventory.constants.stock_document_type import StockDocumentType
from site_inventory.core.exceptions import ValidationError
from site_inventory.models.inventory.site_item_models import SiteItem, SiteItemBatch
from site_inventory.models.inventory.stock_ledger_models import StockLedger
from site_inventory.models.users.user_models import User
from site_inventory.utils.activity_helpers import emit_activity
from site_inventory.utils.decimal_utils import ZERO, to_decimal, to_qty, to_rate

logger = logging.getLogger(__name__)


# =====================================================
# BALANCE ARITHMETIC
# =====================================================
def weighted_receipt(
    stock: Decimal,
    value: Decimal,
    qty: Decimal,
    rate: Decimal,
) -> tuple[Decimal, Decimal, Decimal]:
    """Returns (new_stock, new_rate, new_value) after receiving qty @ rate."""
    stock = to_qty(stock)
    qty = to_qty(qty)
    new_stock = stock + qty
    if new_stock == 0:
        return new_stock, ZERO, ZERO

    new_rate = (to_decimal(value) + qty * to_rate(rate)) / new_stock
    return new_stock, to_rate(new_rate), to_decimal(new_rate * new_stock)


def floored_issue(
    stock: Decimal,
    rate: Decimal,
    qty: Decimal,
) -> tuple[Decimal, Decimal]:
    """Returns (new_stock, new_value) after issuing qty. Rate is unchanged."""
    new_stock = max(to_qty(stock) - to_qty(qty), ZERO)
    return new_stock, to_decimal(to_rate(rate) * new_stock)


def apply_receipt(site_item: SiteItem, qty, rate) -> None:
    stock, new_rate, value = weighted_receipt(
        site_item.closing_stock or ZERO,
        site_item.closing_value or ZERO,
        qty,
        rate,
    )
    site_item.closing_stock = stock
    site_item.unit_rate = new_rate
    site_item.closing_value = value


def apply_issue(site_item: SiteItem, qty) -> None:
    stock, value = floored_issue(
        site_item.closing_stock or ZERO,
        site_item.unit_rate or ZERO,
        qty,
    )
    site_item.closing_stock = stock
    site_item.closing_value = value


def apply_batch_receipt(batch: SiteItemBatch, qty, rate) -> None:
    stock, new_rate, value = weighted_receipt(
        batch.closing_qty or ZERO,
        batch.closing_value or ZERO,
        qty,
        rate,
    )
    batch.closing_qty = stock
    batch.unit_rate = new_rate
    batch.closing_value = value


def apply_batch_issue(batch: SiteItemBatch, qty) -> None:
    stock, value = floored_issue(
        batch.closing_qty or ZERO,
        batch.unit_rate or ZERO,
        qty,
    )
    batch.closing_qty = stock
    batch.closing_value = value


def ensure_batch_expiry(batch: SiteItemBatch, expiry_date: date | None) -> None:
    if batch.expiry_date != expiry_date:
        raise ValidationError(
            f"Expiry date mismatch for batch {batch.batch_number}: "
            f"stored {batch.expiry_date}, got {expiry_date}",
            ErrorCode.BATCH_EXPIRY_MISMATCH,
            {"batch_number": batch.batch_number, "site_id": batch.site_id},
        )


# =====================================================
# LEDGER
# =====================================================
def record_movement(
    db: AsyncSession,
    *,
    site_id: int,
    item_id: int,
    received_qty=ZERO,
    issued_qty=ZERO,
    unit_rate=ZERO,
    document_type: StockDocumentType,
    document_id: int,
    actor: User | None = None,
    transaction_date: datetime | None = None,
) -> StockLedger:
    received_qty = to_qty(received_qty)
    issued_qty = to_qty(issued_qty)

    if received_qty < 0 or issued_qty < 0:
        raise ValidationError(
            "Ledger quantities cannot be negative",
            ErrorCode.STOCK_INVALID_MOVEMENT,
        )
    if received_qty == 0 and issued_qty == 0:
        raise ValidationError(
            "Stock movement quantity cannot be zero",
            ErrorCode.STOCK_INVALID_MOVEMENT,
        )

    row = StockLedger(
        site_id=site_id,
        item_id=item_id,
        transaction_date=transaction_date or datetime.now(timezone.utc),
        document_type=document_type,
        document_id=document_id,
        received_qty=received_qty,
        issued_qty=issued_qty,
        unit_rate=to_rate(unit_rate),
        created_by_id=actor.id if actor else None,
    )
    db.add(row)
    return row


# =====================================================
# LOCKED READS
# =====================================================
async def lock_site_items(
    db: AsyncSession,
    site_id: int,
    item_ids,
) -> dict[int, SiteItem]:
    item_ids = sorted(set(item_ids))
    if not item_ids:
        return {}

    # NO JOINS under FOR UPDATE
    rows = await db.execute(
        select(SiteItem)
        .options(noload("*"))
        .where(
            SiteItem.site_id == site_id,
            SiteItem.item_id.in_(item_ids),
        )
        .order_by(SiteItem.item_id)
        .with_for_update()
    )
    return {si.item_id: si for si in rows.scalars().all()}


async def lock_site_item_batches(
    db: AsyncSession,
    keys,
) -> dict[tuple[int, str], SiteItemBatch]:
    """keys: iterable of (site_item_id, batch_number)."""
    keys = sorted(set(keys))
    if not keys:
        return {}

    rows = await db.execute(
        select(SiteItemBatch)
        .where(
            tuple_(SiteItemBatch.site_item_id, SiteItemBatch.batch_number).in_(keys)
        )
        .order_by(SiteItemBatch.site_item_id, SiteItemBatch.batch_number)
        .with_for_update()
    )
    return {
        (b.site_item_id, b.batch_number): b for b in rows.scalars().all()
    }


async def get_or_create_site_item(
    db: AsyncSession,
    site_id: int,
    item_id: int,
    actor: User,
    locked: dict[int, SiteItem] | None = None,
) -> SiteItem:
    if locked is not None and item_id in locked:
        return locked[item_id]

    found = await lock_site_items(db, site_id, [item_id])
    site_item = found.get(item_id)

    if not site_item:
        site_item = SiteItem(
            site_id=site_id,
            item_id=item_id,
            opening_stock=ZERO,
            opening_rate=ZERO,
            opening_value=ZERO,
            closing_stock=ZERO,
            unit_rate=ZERO,
            closing_value=ZERO,
            created_by_id=actor.id,
        )
        db.add(site_item)
        await db.flush()
        logger.debug("Created site item for site=%s item=%s", site_id, item_id)

    if locked is not None:
        locked[item_id] = site_item
    return site_item


async def get_or_create_batch(
    db: AsyncSession,
    site_item: SiteItem,
    batch_number: str,
    expiry_date: date | None,
) -> SiteItemBatch:
    found = await lock_site_item_batches(db, [(site_item.id, batch_number)])
    batch = found.get((site_item.id, batch_number))

    if batch:
        ensure_batch_expiry(batch, expiry_date)
        return batch

    batch = SiteItemBatch(
        site_item_id=site_item.id,
        site_id=site_item.site_id,
        item_id=site_item.item_id,
        batch_number=batch_number,
        expiry_date=expiry_date,
        closing_qty=ZERO,
        unit_rate=ZERO,
        closing_value=ZERO,
    )
    db.add(batch)
    await db.flush()
    return batch


# =====================================================
# COMPOSITE MOVEMENTS
# =====================================================
async def receive_stock(
    db: AsyncSession,
    *,
    site_item: SiteItem,
    qty,
    rate,
    document_type: StockDocumentType,
    document_id: int,
    actor: User,
) -> StockLedger:
    row = record_movement(
        db,
        site_id=site_item.site_id,
        item_id=site_item.item_id,
        received_qty=qty,
        unit_rate=rate,
        document_type=document_type,
        document_id=document_id,
        actor=actor,
    )
    apply_receipt(site_item, qty, rate)
    site_item.touch(actor)

    await emit_activity(
        db,
        user=actor,
        code=ActivityCode.STOCK_MOVEMENT,
        site_id=site_item.site_id,
        item_id=site_item.item_id,
        received_qty=to_qty(qty),
        issued_qty=ZERO,
        document_type=document_type.value,
        document_id=document_id,
    )
    return row


async def issue_stock(
    db: AsyncSession,
    *,
    site_item: SiteItem,
    qty,
    document_type: StockDocumentType,
    document_id: int,
    actor: User,
) -> Decimal:
    """Issue at the current balance rate. Returns that rate."""
    qty = to_qty(qty)
    if qty > to_qty(site_item.closing_stock):
        raise ValidationError(
            f"Issue of {qty} exceeds closing stock {site_item.closing_stock} "
            f"for item {site_item.item_id} at site {site_item.site_id}",
            ErrorCode.STOCK_INSUFFICIENT,
        )

    rate = to_rate(site_item.unit_rate)
    record_movement(
        db,
        site_id=site_item.site_id,
        item_id=site_item.item_id,
        issued_qty=qty,
        unit_rate=rate,
        document_type=document_type,
        document_id=document_id,
        actor=actor,
    )
    apply_issue(site_item, qty)
    site_item.touch(actor)

    await emit_activity(
        db,
        user=actor,
        code=ActivityCode.STOCK_MOVEMENT,
        site_id=site_item.site_id,
        item_id=site_item.item_id,
        received_qty=ZERO,
        issued_qty=qty,
        document_type=document_type.value,
        document_id=document_id,
    )
    return rate
