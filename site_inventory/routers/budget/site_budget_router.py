import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from site_inventory.constants.roles import PROJECT_DIRECTOR, PROJECT_MANAGER, PURCHASE
from site_inventory.core.db import get_db
from site_inventory.schemas.budget.site_budget_schemas import (
    SiteBudgetCreate,
    SiteBudgetItemOut,
    SiteBudgetItemUpdate,
    SiteBudgetOut,
    SiteBudgetSummary,
)
from site_inventory.services.budget.site_budget_service import (
    create_site_budget,
    delete_site_budget,
    get_site_budget,
    get_site_budget_summary,
    list_site_budgets,
    refresh_ordered_quantities,
    update_site_budget_line,
)
from site_inventory.utils.check_roles import require_role
from site_inventory.utils.response import APIResponse, PageData, success_response

router = APIRouter(prefix="/site-budgets", tags=["Site Budgets"])
logger = logging.getLogger(__name__)

EDIT_ROLES = [PROJECT_MANAGER]
READ_ROLES = [PROJECT_MANAGER, PROJECT_DIRECTOR, PURCHASE]


@router.post("/", response_model=APIResponse[SiteBudgetOut])
async def create_site_budget_api(
    payload: SiteBudgetCreate,
    db: AsyncSession = Depends(get_db),
    user=Depends(require_role(EDIT_ROLES)),
):
    logger.info("Create site budget", extra={"site_id": payload.site_id})

    budget = await create_site_budget(db, payload, user)
    return success_response("Site budget created successfully", budget)


@router.get("/", response_model=APIResponse[PageData[SiteBudgetOut]])
async def list_site_budgets_api(
    db: AsyncSession = Depends(get_db),
    user=Depends(require_role(READ_ROLES)),
    site_id: Optional[int] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
):
    data = await list_site_budgets(db, site_id=site_id, page=page, page_size=page_size)
    return success_response("Site budgets fetched successfully", data)


@router.get("/summary/{site_id}", response_model=APIResponse[SiteBudgetSummary])
async def site_budget_summary_api(
    site_id: int,
    db: AsyncSession = Depends(get_db),
    user=Depends(require_role(READ_ROLES)),
):
    summary = await get_site_budget_summary(db, site_id)
    return success_response("Site budget summary fetched successfully", summary)


@router.patch("/items/{line_id}", response_model=APIResponse[SiteBudgetItemOut])
async def update_site_budget_line_api(
    line_id: int,
    payload: SiteBudgetItemUpdate,
    db: AsyncSession = Depends(get_db),
    user=Depends(require_role(EDIT_ROLES)),
):
    logger.info("Update site budget line", extra={"line_id": line_id})

    line = await update_site_budget_line(db, line_id, payload, user)
    return success_response("Site budget line updated successfully", line)


@router.get("/{budget_id}", response_model=APIResponse[SiteBudgetOut])
async def get_site_budget_api(
    budget_id: int,
    db: AsyncSession = Depends(get_db),
    user=Depends(require_role(READ_ROLES)),
):
    budget = await get_site_budget(db, budget_id)
    return success_response("Site budget fetched successfully", budget)


@router.post("/{budget_id}/refresh-ordered", response_model=APIResponse[SiteBudgetOut])
async def refresh_ordered_api(
    budget_id: int,
    db: AsyncSession = Depends(get_db),
    user=Depends(require_role(READ_ROLES)),
):
    budget = await refresh_ordered_quantities(db, budget_id)
    return success_response("Ordered quantities refreshed", budget)


@router.delete("/{budget_id}", response_model=APIResponse[None])
async def delete_site_budget_api(
    budget_id: int,
    db: AsyncSession = Depends(get_db),
    user=Depends(require_role(EDIT_ROLES)),
):
    logger.info("Delete site budget", extra={"budget_id": budget_id, "actor_id": user.id})

    await delete_site_budget(db, budget_id, user)
    return success_response("Site budget deleted successfully")
