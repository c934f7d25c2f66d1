import logging

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from site_inventory.constants.error_codes import ErrorCode
from site_inventory.core.exceptions import NotFoundError
from site_inventory.models.inventory.site_item_models import SiteItem, SiteItemBatch
from site_inventory.models.inventory.stock_ledger_models import StockLedger
from site_inventory.models.masters.item_models import Item
from site_inventory.models.masters.site_models import Site
from site_inventory.schemas.inventory.stock_schemas import (
    SiteItemOutSchema,
    SiteItemBatchOutSchema,
    StockLedgerOutSchema,
    StockDriftSchema,
    StockReconciliationSchema,
)
from site_inventory.utils.decimal_utils import ZERO, to_qty
from site_inventory.utils.response import PageData

logger = logging.getLogger(__name__)


async def _ensure_site(db: AsyncSession, site_id: int) -> None:
    exists = await db.scalar(select(Site.id).where(Site.id == site_id))
    if not exists:
        raise NotFoundError("Site not found", ErrorCode.SITE_NOT_FOUND)


# =====================================================
# BALANCES
# =====================================================
async def list_site_stock(
    db: AsyncSession,
    site_id: int,
    *,
    search: str | None,
    in_stock_only: bool,
    page: int,
    page_size: int,
) -> PageData[SiteItemOutSchema]:
    await _ensure_site(db, site_id)

    filters = [SiteItem.site_id == site_id]
    if search:
        pattern = f"%{search.strip()}%"
        filters.append(Item.item.ilike(pattern) | Item.item_code.ilike(pattern))
    if in_stock_only:
        filters.append(SiteItem.closing_stock > 0)

    total = await db.scalar(
        select(func.count())
        .select_from(SiteItem)
        .join(Item, Item.id == SiteItem.item_id)
        .where(*filters)
    )

    rows = await db.execute(
        select(SiteItem, Item)
        .join(Item, Item.id == SiteItem.item_id)
        .where(*filters)
        .order_by(Item.item_code)
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    pairs = rows.all()

    batches_by_site_item: dict[int, list[SiteItemBatch]] = {}
    site_item_ids = [si.id for si, _ in pairs]
    if site_item_ids:
        batch_rows = await db.execute(
            select(SiteItemBatch)
            .where(
                SiteItemBatch.site_item_id.in_(site_item_ids),
                SiteItemBatch.closing_qty > 0,
            )
            .order_by(SiteItemBatch.expiry_date, SiteItemBatch.batch_number)
        )
        for b in batch_rows.scalars().all():
            batches_by_site_item.setdefault(b.site_item_id, []).append(b)

    items = [
        SiteItemOutSchema(
            id=si.id,
            site_id=si.site_id,
            item_id=si.item_id,
            item_code=item.item_code,
            item=item.item,
            unit=item.unit,
            opening_stock=si.opening_stock,
            closing_stock=si.closing_stock,
            unit_rate=si.unit_rate,
            closing_value=si.closing_value,
            batches=[
                SiteItemBatchOutSchema.model_validate(b)
                for b in batches_by_site_item.get(si.id, [])
            ],
        )
        for si, item in pairs
    ]

    return PageData[SiteItemOutSchema](
        total=total or 0,
        page=page,
        page_size=page_size,
        items=items,
    )


# =====================================================
# LEDGER
# =====================================================
async def list_stock_ledger(
    db: AsyncSession,
    *,
    site_id: int | None,
    item_id: int | None,
    page: int,
    page_size: int,
) -> PageData[StockLedgerOutSchema]:
    filters = []
    if site_id:
        filters.append(StockLedger.site_id == site_id)
    if item_id:
        filters.append(StockLedger.item_id == item_id)

    total = await db.scalar(
        select(func.count()).select_from(StockLedger).where(*filters)
    )

    rows = await db.execute(
        select(StockLedger)
        .where(*filters)
        .order_by(StockLedger.transaction_date.desc(), StockLedger.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )

    return PageData[StockLedgerOutSchema](
        total=total or 0,
        page=page,
        page_size=page_size,
        items=[
            StockLedgerOutSchema.model_validate(r)
            for r in rows.scalars().all()
        ],
    )


# =====================================================
# RECONCILIATION (READ-ONLY)
# =====================================================
async def reconcile_site_stock(
    db: AsyncSession,
    site_id: int,
) -> StockReconciliationSchema:
    """Replay opening stock + ledger and compare with stored closing stock.

    Balances are reported, never rewritten.
    """
    await _ensure_site(db, site_id)

    net = func.coalesce(
        func.sum(StockLedger.received_qty - StockLedger.issued_qty),
        0,
    )
    ledger_rows = await db.execute(
        select(StockLedger.item_id, net.label("net_qty"))
        .where(StockLedger.site_id == site_id)
        .group_by(StockLedger.item_id)
    )
    ledger_net = {r.item_id: to_qty(r.net_qty) for r in ledger_rows.all()}

    site_items = (
        await db.execute(
            select(
                SiteItem.item_id,
                SiteItem.opening_stock,
                SiteItem.closing_stock,
            ).where(SiteItem.site_id == site_id)
        )
    ).all()

    drifts = []
    seen = set()
    for row in site_items:
        seen.add(row.item_id)
        expected = to_qty(row.opening_stock) + ledger_net.get(row.item_id, ZERO)
        actual = to_qty(row.closing_stock)
        if expected != actual:
            drifts.append(
                StockDriftSchema(
                    item_id=row.item_id,
                    ledger_qty=expected,
                    closing_stock=actual,
                    difference=actual - expected,
                )
            )

    # ledger rows without any balance row
    for item_id, qty in ledger_net.items():
        if item_id not in seen and qty != 0:
            drifts.append(
                StockDriftSchema(
                    item_id=item_id,
                    ledger_qty=qty,
                    closing_stock=ZERO,
                    difference=-qty,
                )
            )

    if drifts:
        logger.warning(
            "Stock drift at site %s on %d item(s): %s",
            site_id,
            len(drifts),
            [d.item_id for d in drifts],
        )

    return StockReconciliationSchema(
        site_id=site_id,
        items_checked=len(seen),
        drifts=drifts,
    )


async def reconcile_all_sites(db: AsyncSession) -> int:
    """Nightly job. Returns number of sites with drift."""
    site_ids = (await db.execute(select(Site.id).order_by(Site.id))).scalars().all()

    drifting = 0
    for site_id in site_ids:
        report = await reconcile_site_stock(db, site_id)
        if report.drifts:
            drifting += 1

    logger.info(
        "Stock reconciliation finished: %d site(s), %d with drift",
        len(site_ids),
        drifting,
    )
    return drifting
