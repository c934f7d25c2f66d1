import logging
from collections import defaultdict
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from site_inventory.constants.activity_codes import ActivityCode
from site_inventory.constants.error_codes import ErrorCode
from site_inventory.constants.stock_document_type import StockDocumentType
from site_inventory.core.exceptions import (
    AppException,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from site_inventory.models.inventory.stock_adjustment_models import (
    StockAdjustment,
    StockAdjustmentDetail,
)
from site_inventory.models.masters.item_models import Item
from site_inventory.models.masters.site_models import Site
from site_inventory.models.users.user_models import User
from site_inventory.schemas.inventory.stock_adjustment_schemas import (
    StockAdjustmentCreateSchema,
    StockAdjustmentLineOutSchema,
    StockAdjustmentOutSchema,
)
from site_inventory.services.inventory.stock_ledger_service import (
    get_or_create_site_item,
    issue_stock,
    lock_site_items,
    receive_stock,
)
from site_inventory.utils.activity_helpers import emit_activity
from site_inventory.utils.decimal_utils import ZERO, to_decimal, to_qty, to_rate

logger = logging.getLogger(__name__)


async def create_stock_adjustment(
    db: AsyncSession,
    payload: StockAdjustmentCreateSchema,
    user: User,
) -> StockAdjustmentOutSchema:
    """Post receipts and issues at one site.

    Issues are checked against the closing stock before the adjustment and
    posted ahead of receipts.
    """
    if not payload.details:
        raise ValidationError(
            "Adjustment must contain at least one item",
            ErrorCode.ADJUSTMENT_EMPTY_ITEMS,
        )

    site_exists = await db.scalar(select(Site.id).where(Site.id == payload.site_id))
    if not site_exists:
        raise NotFoundError("Site not found", ErrorCode.SITE_NOT_FOUND)

    item_ids = {line.item_id for line in payload.details}
    found = set(
        (await db.execute(select(Item.id).where(Item.id.in_(item_ids)))).scalars().all()
    )
    if item_ids - found:
        raise NotFoundError(
            f"Invalid item(s): {sorted(item_ids - found)}",
            ErrorCode.ITEM_NOT_FOUND,
        )

    balances = await lock_site_items(db, payload.site_id, item_ids)

    issues: dict[int, Decimal] = defaultdict(lambda: ZERO)
    for line in payload.details:
        issues[line.item_id] += to_qty(line.issued_qty)

    for item_id, qty in issues.items():
        if qty == 0:
            continue
        site_item = balances.get(item_id)
        available = to_qty(site_item.closing_stock) if site_item else ZERO
        if qty > available:
            raise ValidationError(
                f"Issue of {qty} for item {item_id} exceeds closing stock {available}",
                ErrorCode.STOCK_INSUFFICIENT,
                {"item_id": item_id, "available": str(available)},
            )

    try:
        adjustment = StockAdjustment(
            site_id=payload.site_id,
            adjustment_date=payload.adjustment_date,
            remarks=payload.remarks,
            created_by_id=user.id,
        )
        db.add(adjustment)
        await db.flush()

        details = [
            StockAdjustmentDetail(
                stock_adjustment_id=adjustment.id,
                item_id=line.item_id,
                received_qty=to_qty(line.received_qty),
                issued_qty=to_qty(line.issued_qty),
                rate=to_rate(line.rate),
                amount=ZERO,
                remarks=line.remarks,
            )
            for line in payload.details
        ]
        db.add_all(details)

        amounts: dict[int, Decimal] = defaultdict(lambda: ZERO)

        for idx, detail in enumerate(details):
            if detail.issued_qty > 0:
                rate = await issue_stock(
                    db,
                    site_item=balances[detail.item_id],
                    qty=detail.issued_qty,
                    document_type=StockDocumentType.STOCK_ADJUSTMENT,
                    document_id=adjustment.id,
                    actor=user,
                )
                amounts[idx] += detail.issued_qty * rate

        for idx, detail in enumerate(details):
            if detail.received_qty > 0:
                site_item = await get_or_create_site_item(
                    db, payload.site_id, detail.item_id, user, locked=balances
                )
                await receive_stock(
                    db,
                    site_item=site_item,
                    qty=detail.received_qty,
                    rate=detail.rate,
                    document_type=StockDocumentType.STOCK_ADJUSTMENT,
                    document_id=adjustment.id,
                    actor=user,
                )
                amounts[idx] += detail.received_qty * detail.rate

        for idx, detail in enumerate(details):
            detail.amount = to_decimal(amounts[idx])

        await emit_activity(
            db,
            user=user,
            code=ActivityCode.CREATE_STOCK_ADJUSTMENT,
            target_name=str(adjustment.id),
            site_id=payload.site_id,
        )

        await db.commit()

    except AppException:
        await db.rollback()
        raise

    except IntegrityError:
        await db.rollback()
        raise ConflictError("Concurrent stock update detected")

    adjustment_id = adjustment.id
    logger.info(
        "Stock adjustment %s posted at site %s (%d line(s))",
        adjustment_id,
        payload.site_id,
        len(payload.details),
    )
    return await get_stock_adjustment(db, adjustment_id)


async def get_stock_adjustment(
    db: AsyncSession,
    adjustment_id: int,
) -> StockAdjustmentOutSchema:
    adjustment = await db.scalar(
        select(StockAdjustment)
        .options(selectinload(StockAdjustment.details))
        .where(StockAdjustment.id == adjustment_id)
        .execution_options(populate_existing=True)
    )
    if not adjustment:
        raise NotFoundError("Stock adjustment not found")

    return StockAdjustmentOutSchema(
        id=adjustment.id,
        site_id=adjustment.site_id,
        adjustment_date=adjustment.adjustment_date,
        remarks=adjustment.remarks,
        created_at=adjustment.created_at,
        created_by_id=adjustment.created_by_id,
        details=[
            StockAdjustmentLineOutSchema.model_validate(d)
            for d in adjustment.details
        ],
    )
