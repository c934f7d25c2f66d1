import logging
from collections import defaultdict
from decimal import Decimal

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import noload, selectinload

from site_inventory.constants.activity_codes import ActivityCode
from site_inventory.constants.error_codes import ErrorCode
from site_inventory.constants.stock_document_type import StockDocumentType
from site_inventory.core.exceptions import (
    AppException,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from site_inventory.models.inventory.daily_consumption_models import (
    DailyConsumption,
    DailyConsumptionDetail,
)
from site_inventory.models.masters.item_models import Item
from site_inventory.models.masters.site_models import Site
from site_inventory.models.users.user_models import User
from site_inventory.schemas.inventory.daily_consumption_schemas import (
    DailyConsumptionCreateSchema,
    DailyConsumptionLineOutSchema,
    DailyConsumptionListItemSchema,
    DailyConsumptionOutSchema,
)
from site_inventory.services.inventory.document_numbering import generate_block_number
from site_inventory.services.inventory.stock_ledger_service import (
    issue_stock,
    lock_site_items,
)
from site_inventory.utils.activity_helpers import emit_activity
from site_inventory.utils.decimal_utils import ZERO, to_decimal, to_qty
from site_inventory.utils.response import PageData

logger = logging.getLogger(__name__)


# =====================================================
# CREATE
# =====================================================
async def create_daily_consumption(
    db: AsyncSession,
    payload: DailyConsumptionCreateSchema,
    user: User,
) -> DailyConsumptionOutSchema:
    """Issue the day's usage out of a site's stock at the running rate.

    Quantities for the same item are summed and checked against the
    closing stock before anything is written.
    """
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

    wanted: dict[int, Decimal] = defaultdict(lambda: ZERO)
    for line in payload.details:
        wanted[line.item_id] += to_qty(line.qty)

    for item_id, qty in wanted.items():
        site_item = balances.get(item_id)
        available = to_qty(site_item.closing_stock) if site_item else ZERO
        if qty > available:
            raise ValidationError(
                f"Consumption of {qty} for item {item_id} exceeds closing stock {available}",
                ErrorCode.STOCK_INSUFFICIENT,
                {"item_id": item_id, "available": str(available)},
            )

    if payload.daily_consumption_no and payload.daily_consumption_no.strip():
        number = payload.daily_consumption_no.strip()
        taken = await db.scalar(
            select(DailyConsumption.id).where(DailyConsumption.daily_consumption_no == number)
        )
        if taken:
            raise ConflictError(
                f"Daily consumption number {number} already exists",
                ErrorCode.DC_DUPLICATE_NUMBER,
            )
    else:
        number = await generate_block_number(db, DailyConsumption.daily_consumption_no)

    try:
        consumption = DailyConsumption(
            daily_consumption_no=number,
            daily_consumption_date=payload.daily_consumption_date,
            site_id=payload.site_id,
            total_amount=ZERO,
            created_by_id=user.id,
            updated_by_id=user.id,
        )
        db.add(consumption)
        await db.flush()

        total = ZERO
        for line in payload.details:
            qty = to_qty(line.qty)
            rate = await issue_stock(
                db,
                site_item=balances[line.item_id],
                qty=qty,
                document_type=StockDocumentType.DAILY_CONSUMPTION,
                document_id=consumption.id,
                actor=user,
            )
            amount = to_decimal(qty * rate)
            db.add(
                DailyConsumptionDetail(
                    daily_consumption_id=consumption.id,
                    item_id=line.item_id,
                    qty=qty,
                    rate=rate,
                    amount=amount,
                )
            )
            total += amount

        consumption.total_amount = to_decimal(total)

        await emit_activity(
            db,
            user=user,
            code=ActivityCode.CREATE_DAILY_CONSUMPTION,
            target_name=number,
            site_id=payload.site_id,
        )

        await db.commit()

    except AppException:
        await db.rollback()
        raise

    except IntegrityError:
        await db.rollback()
        raise ConflictError(
            "Daily consumption could not be saved, please retry",
            ErrorCode.DC_DUPLICATE_NUMBER,
        )

    consumption_id = consumption.id
    logger.info(
        "Daily consumption %s recorded at site %s (%d line(s))",
        number,
        payload.site_id,
        len(payload.details),
    )
    return await get_daily_consumption(db, consumption_id)


# =====================================================
# READ
# =====================================================
async def get_daily_consumption(
    db: AsyncSession,
    consumption_id: int,
) -> DailyConsumptionOutSchema:
    consumption = await db.scalar(
        select(DailyConsumption)
        .options(selectinload(DailyConsumption.details))
        .where(DailyConsumption.id == consumption_id)
        .execution_options(populate_existing=True)
    )
    if not consumption:
        raise NotFoundError("Daily consumption not found", ErrorCode.DC_NOT_FOUND)

    return DailyConsumptionOutSchema(
        id=consumption.id,
        daily_consumption_no=consumption.daily_consumption_no,
        daily_consumption_date=consumption.daily_consumption_date,
        site_id=consumption.site_id,
        total_amount=consumption.total_amount,
        created_at=consumption.created_at,
        created_by_id=consumption.created_by_id,
        details=[
            DailyConsumptionLineOutSchema.model_validate(d)
            for d in consumption.details
        ],
    )


async def list_daily_consumptions(
    db: AsyncSession,
    *,
    site_id: int | None = None,
    search: str | None = None,
    page: int = 1,
    page_size: int = 20,
) -> PageData[DailyConsumptionListItemSchema]:
    filters = []
    if site_id:
        filters.append(DailyConsumption.site_id == site_id)
    if search:
        filters.append(DailyConsumption.daily_consumption_no.ilike(f"%{search.strip()}%"))

    total = await db.scalar(
        select(func.count()).select_from(DailyConsumption).where(*filters)
    )
    rows = await db.execute(
        select(DailyConsumption)
        .options(noload("*"))
        .where(*filters)
        .order_by(DailyConsumption.daily_consumption_date.desc(), DailyConsumption.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )

    return PageData[DailyConsumptionListItemSchema](
        total=total or 0,
        page=page,
        page_size=page_size,
        items=[DailyConsumptionListItemSchema.model_validate(c) for c in rows.scalars().all()],
    )
