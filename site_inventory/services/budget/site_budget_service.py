import logging
from collections import Counter
from decimal import Decimal

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import noload, selectinload

from site_inventory.constants.activity_codes import ActivityCode
from site_inventory.constants.error_codes import ErrorCode
from site_inventory.core.exceptions import (
    AppException,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from site_inventory.models.budget.site_budget_models import (
    SiteBudget,
    SiteBudgetDetail,
    SiteBudgetItem,
)
from site_inventory.models.enums.purchase_order_status import PurchaseOrderStatus
from site_inventory.models.masters.item_models import Item
from site_inventory.models.masters.site_models import Site
from site_inventory.models.procurement.purchase_order_models import (
    PurchaseOrder,
    PurchaseOrderDetail,
)
from site_inventory.models.users.user_models import User
from site_inventory.schemas.budget.site_budget_schemas import (
    SiteBudgetCreate,
    SiteBudgetDetailOut,
    SiteBudgetItemOut,
    SiteBudgetItemUpdate,
    SiteBudgetOut,
    SiteBudgetSummary,
)
from site_inventory.utils.activity_helpers import emit_activity
from site_inventory.utils.decimal_utils import ZERO, to_decimal, to_qty, to_rate
from site_inventory.utils.response import PageData

logger = logging.getLogger(__name__)


# =====================================================
# DERIVED VALUES
# =====================================================
def budget_value(qty, rate) -> Decimal:
    return to_decimal(to_qty(qty) * to_rate(rate))


def recompute_line(line: SiteBudgetItem) -> None:
    line.budget_value = budget_value(line.budget_qty, line.budget_rate)
    line.ordered_value = budget_value(line.ordered_qty, line.avg_rate)


def _build_budget_out(budget: SiteBudget) -> SiteBudgetOut:
    lines = [line for d in budget.details for line in d.items]
    return SiteBudgetOut(
        id=budget.id,
        site_id=budget.site_id,
        site=budget.site.site if budget.site else None,
        boq_id=budget.boq_id,
        month=budget.month,
        week=budget.week,
        from_date=budget.from_date,
        to_date=budget.to_date,
        total_budget_value=to_decimal(sum((line.budget_value for line in lines), ZERO)),
        total_ordered_value=to_decimal(sum((line.ordered_value for line in lines), ZERO)),
        created_at=budget.created_at,
        created_by=budget.created_by_username,
        details=[SiteBudgetDetailOut.model_validate(d) for d in budget.details],
    )


async def _budget_item_ids(db: AsyncSession, budget_id: int) -> list[tuple[int, int]]:
    rows = await db.execute(
        select(SiteBudgetItem.id, SiteBudgetItem.item_id)
        .join(SiteBudgetDetail, SiteBudgetItem.site_budget_detail_id == SiteBudgetDetail.id)
        .where(SiteBudgetDetail.site_budget_id == budget_id)
    )
    return list(rows.all())


# =====================================================
# CREATE
# =====================================================
async def create_site_budget(
    db: AsyncSession,
    payload: SiteBudgetCreate,
    user: User,
) -> SiteBudgetOut:
    site = await db.scalar(select(Site).where(Site.id == payload.site_id))
    if not site:
        raise NotFoundError("Site not found", ErrorCode.SITE_NOT_FOUND)

    all_lines = [line for d in payload.details for line in d.items]
    if not all_lines:
        raise ValidationError(
            "Budget must contain at least one item",
            ErrorCode.BUDGET_EMPTY_ITEMS,
        )

    duplicates = sorted(
        item_id
        for item_id, count in Counter(line.item_id for line in all_lines).items()
        if count > 1
    )
    if duplicates:
        raise ValidationError(
            f"Item(s) {duplicates} appear more than once in the budget",
            ErrorCode.BUDGET_DUPLICATE_ITEM,
            {"item_ids": duplicates},
        )

    item_ids = {line.item_id for line in all_lines}
    found = set(
        (await db.execute(select(Item.id).where(Item.id.in_(item_ids)))).scalars().all()
    )
    if item_ids - found:
        raise NotFoundError(
            f"Invalid item(s): {sorted(item_ids - found)}",
            ErrorCode.ITEM_NOT_FOUND,
        )

    try:
        budget = SiteBudget(
            site_id=payload.site_id,
            boq_id=payload.boq_id,
            month=payload.month,
            week=payload.week,
            from_date=payload.from_date,
            to_date=payload.to_date,
            created_by_id=user.id,
            updated_by_id=user.id,
        )
        db.add(budget)
        await db.flush()

        for d in payload.details:
            detail = SiteBudgetDetail(site_budget_id=budget.id, boq_item_id=d.boq_item_id)
            db.add(detail)
            await db.flush()

            for line in d.items:
                item = SiteBudgetItem(
                    site_budget_detail_id=detail.id,
                    item_id=line.item_id,
                    budget_qty=to_qty(line.budget_qty),
                    budget_rate=to_rate(line.budget_rate),
                    purchase_rate=to_rate(line.purchase_rate),
                    ordered_qty=ZERO,
                    avg_rate=ZERO,
                    qty_50_alert=line.qty_50_alert,
                    value_50_alert=line.value_50_alert,
                    qty_75_alert=line.qty_75_alert,
                    value_75_alert=line.value_75_alert,
                )
                recompute_line(item)
                db.add(item)

        await emit_activity(
            db,
            user=user,
            code=ActivityCode.CREATE_SITE_BUDGET,
            target_name=f"{site.site} #{budget.id}",
        )
        await db.commit()

    except IntegrityError:
        await db.rollback()
        raise ConflictError("Site budget could not be saved")

    budget_id = budget.id
    logger.info("Site budget %s created for site %s", budget_id, payload.site_id)
    return await get_site_budget(db, budget_id)


# =====================================================
# UPDATE LINE
# =====================================================
async def update_site_budget_line(
    db: AsyncSession,
    line_id: int,
    payload: SiteBudgetItemUpdate,
    user: User,
) -> SiteBudgetItemOut:
    """Merge a partial update onto a budget line.

    budget_value and ordered_value are always recomputed from the merged
    quantities and rates; they cannot be set directly.
    """
    line = await db.scalar(
        select(SiteBudgetItem)
        .options(noload("*"))
        .where(SiteBudgetItem.id == line_id)
        .with_for_update()
    )
    if not line:
        raise NotFoundError("Budget line not found", ErrorCode.BUDGET_LINE_NOT_FOUND)

    patch = payload.model_dump(exclude_unset=True, exclude_none=True)

    new_item_id = patch.get("item_id")
    if new_item_id is not None and new_item_id != line.item_id:
        item_exists = await db.scalar(select(Item.id).where(Item.id == new_item_id))
        if not item_exists:
            raise NotFoundError("Item not found", ErrorCode.ITEM_NOT_FOUND)

        budget_id = await db.scalar(
            select(SiteBudgetDetail.site_budget_id).where(
                SiteBudgetDetail.id == line.site_budget_detail_id
            )
        )
        taken = [
            other_id
            for other_id, item_id in await _budget_item_ids(db, budget_id)
            if item_id == new_item_id and other_id != line.id
        ]
        if taken:
            raise ValidationError(
                f"Item {new_item_id} already exists in this site budget",
                ErrorCode.BUDGET_DUPLICATE_ITEM,
                {"item_id": new_item_id, "line_id": taken[0]},
            )

    converters = {
        "budget_qty": to_qty,
        "ordered_qty": to_qty,
        "budget_rate": to_rate,
        "purchase_rate": to_rate,
        "avg_rate": to_rate,
    }

    try:
        changes = []
        for field, value in patch.items():
            value = converters.get(field, lambda v: v)(value)
            if getattr(line, field) != value:
                changes.append(f"{field}: {getattr(line, field)} -> {value}")
                setattr(line, field, value)

        recompute_line(line)

        if changes:
            await emit_activity(
                db,
                user=user,
                code=ActivityCode.UPDATE_SITE_BUDGET_LINE,
                target_name=str(line.id),
                changes=", ".join(changes),
            )
        await db.commit()

    except AppException:
        await db.rollback()
        raise

    logger.info("Budget line %s updated (%d change(s))", line_id, len(changes))
    return SiteBudgetItemOut.model_validate(line)


# =====================================================
# ORDERED QUANTITIES
# =====================================================
async def _ordered_totals(
    db: AsyncSession,
    budget: SiteBudget,
    item_ids: set[int],
) -> dict[int, tuple[Decimal, Decimal]]:
    """item_id -> (sum qty, sum qty x rate) over non-suspended POs of the site."""
    query = (
        select(
            PurchaseOrderDetail.item_id,
            func.sum(PurchaseOrderDetail.qty),
            func.sum(PurchaseOrderDetail.qty * PurchaseOrderDetail.rate),
        )
        .join(PurchaseOrder, PurchaseOrderDetail.purchase_order_id == PurchaseOrder.id)
        .where(
            PurchaseOrder.site_id == budget.site_id,
            PurchaseOrder.approval_status != PurchaseOrderStatus.SUSPENDED,
            PurchaseOrderDetail.item_id.in_(item_ids),
        )
        .group_by(PurchaseOrderDetail.item_id)
    )
    if budget.from_date:
        query = query.where(PurchaseOrder.purchase_order_date >= budget.from_date)
    if budget.to_date:
        query = query.where(PurchaseOrder.purchase_order_date <= budget.to_date)

    rows = await db.execute(query)
    return {
        item_id: (to_qty(qty), to_qty(value))
        for item_id, qty, value in rows.all()
    }


async def refresh_ordered_quantities(
    db: AsyncSession,
    budget_id: int,
) -> SiteBudgetOut:
    budget = await db.scalar(
        select(SiteBudget)
        .options(noload("*"))
        .where(SiteBudget.id == budget_id)
        .with_for_update()
    )
    if not budget:
        raise NotFoundError("Site budget not found", ErrorCode.BUDGET_NOT_FOUND)

    line_ids = [line_id for line_id, _ in await _budget_item_ids(db, budget_id)]
    lines = (
        await db.execute(
            select(SiteBudgetItem)
            .options(noload("*"))
            .where(SiteBudgetItem.id.in_(line_ids))
            .with_for_update()
        )
    ).scalars().all()

    totals = await _ordered_totals(db, budget, {line.item_id for line in lines})

    for line in lines:
        qty, value = totals.get(line.item_id, (ZERO, ZERO))
        line.ordered_qty = qty
        line.avg_rate = to_rate(value / qty) if qty > 0 else ZERO
        recompute_line(line)

    await db.commit()

    logger.info("Ordered quantities refreshed for budget %s (%d line(s))", budget_id, len(lines))
    return await get_site_budget(db, budget_id)


async def refresh_all_budgets(db: AsyncSession) -> int:
    budget_ids = (await db.execute(select(SiteBudget.id).order_by(SiteBudget.id))).scalars().all()
    for budget_id in budget_ids:
        await refresh_ordered_quantities(db, budget_id)
    return len(budget_ids)


# =====================================================
# READ / DELETE
# =====================================================
async def get_site_budget(
    db: AsyncSession,
    budget_id: int,
) -> SiteBudgetOut:
    budget = await db.scalar(
        select(SiteBudget)
        .options(
            selectinload(SiteBudget.details).selectinload(SiteBudgetDetail.items),
            selectinload(SiteBudget.site),
            selectinload(SiteBudget.created_by),
        )
        .where(SiteBudget.id == budget_id)
        .execution_options(populate_existing=True)
    )
    if not budget:
        raise NotFoundError("Site budget not found", ErrorCode.BUDGET_NOT_FOUND)

    return _build_budget_out(budget)


async def list_site_budgets(
    db: AsyncSession,
    *,
    site_id: int | None = None,
    page: int = 1,
    page_size: int = 20,
) -> PageData[SiteBudgetOut]:
    query = select(SiteBudget)
    if site_id is not None:
        query = query.where(SiteBudget.site_id == site_id)

    total = await db.scalar(select(func.count()).select_from(query.subquery()))

    rows = await db.execute(
        query.options(
            selectinload(SiteBudget.details).selectinload(SiteBudgetDetail.items),
            selectinload(SiteBudget.site),
            selectinload(SiteBudget.created_by),
        )
        .order_by(SiteBudget.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )

    return PageData[SiteBudgetOut](
        total=total or 0,
        page=page,
        page_size=page_size,
        items=[_build_budget_out(b) for b in rows.scalars().all()],
    )


async def get_site_budget_summary(
    db: AsyncSession,
    site_id: int,
) -> SiteBudgetSummary:
    row = (
        await db.execute(
            select(
                func.count(SiteBudgetItem.id),
                func.sum(SiteBudgetItem.budget_qty),
                func.sum(SiteBudgetItem.budget_value),
            )
            .join(SiteBudgetDetail, SiteBudgetItem.site_budget_detail_id == SiteBudgetDetail.id)
            .join(SiteBudget, SiteBudgetDetail.site_budget_id == SiteBudget.id)
            .where(SiteBudget.site_id == site_id)
        )
    ).one()

    total_items, total_qty, total_value = row
    total_qty = to_qty(total_qty)
    total_value = to_decimal(total_value)

    return SiteBudgetSummary(
        site_id=site_id,
        total_items=total_items or 0,
        total_budget_value=total_value,
        avg_budget_rate=to_rate(total_value / total_qty) if total_qty > 0 else ZERO,
    )


async def delete_site_budget(
    db: AsyncSession,
    budget_id: int,
    user: User,
) -> None:
    budget = await db.scalar(
        select(SiteBudget)
        .options(
            selectinload(SiteBudget.details).selectinload(SiteBudgetDetail.items),
            selectinload(SiteBudget.site),
        )
        .where(SiteBudget.id == budget_id)
    )
    if not budget:
        raise NotFoundError("Site budget not found", ErrorCode.BUDGET_NOT_FOUND)

    site_name = budget.site.site if budget.site else str(budget.site_id)

    await db.delete(budget)
    await emit_activity(
        db,
        user=user,
        code=ActivityCode.DELETE_SITE_BUDGET,
        target_name=f"{site_name} #{budget_id}",
    )
    await db.commit()

    logger.info("Site budget %s deleted", budget_id)
