from collections import defaultdict
from decimal import Decimal
from typing import Iterable

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from site_inventory.models.budget.site_budget_models import (
    SiteBudget,
    SiteBudgetDetail,
    SiteBudgetItem,
)
from site_inventory.models.masters.item_models import Item
from site_inventory.schemas.budget.site_budget_schemas import BudgetViolation
from site_inventory.utils.decimal_utils import ZERO, to_qty


async def find_budget_violations(
    db: AsyncSession,
    site_id: int,
    lines: Iterable[tuple[int, Decimal]],
) -> list[BudgetViolation]:
    """Items whose requested quantity exceeds budget qty minus ordered qty.

    Items with no budget line at the site are not limited.
    """
    requested: dict[int, Decimal] = defaultdict(lambda: ZERO)
    for item_id, qty in lines:
        requested[item_id] += to_qty(qty)

    if not requested:
        return []

    rows = await db.execute(
        select(
            SiteBudgetItem.item_id,
            Item.item,
            func.sum(SiteBudgetItem.budget_qty),
            func.sum(SiteBudgetItem.ordered_qty),
        )
        .join(SiteBudgetDetail, SiteBudgetItem.site_budget_detail_id == SiteBudgetDetail.id)
        .join(SiteBudget, SiteBudgetDetail.site_budget_id == SiteBudget.id)
        .join(Item, SiteBudgetItem.item_id == Item.id)
        .where(
            SiteBudget.site_id == site_id,
            SiteBudgetItem.item_id.in_(requested.keys()),
        )
        .group_by(SiteBudgetItem.item_id, Item.item)
    )

    violations = []
    for item_id, item_name, budget_qty, ordered_qty in rows.all():
        budget_qty = to_qty(budget_qty)
        ordered_qty = to_qty(ordered_qty)
        available = budget_qty - ordered_qty
        if requested[item_id] > available:
            violations.append(
                BudgetViolation(
                    item_id=item_id,
                    item_name=item_name,
                    budget_qty=budget_qty,
                    ordered_qty=ordered_qty,
                    available_qty=available,
                    requested_qty=requested[item_id],
                )
            )

    return sorted(violations, key=lambda v: v.item_id)
