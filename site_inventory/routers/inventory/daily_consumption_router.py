import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from site_inventory.constants.roles import PROJECT_MANAGER, SITE_ENGINEER, STORE_KEEPER
from site_inventory.core.db import get_db
from site_inventory.schemas.inventory.daily_consumption_schemas import (
    DailyConsumptionCreateSchema,
    DailyConsumptionListItemSchema,
    DailyConsumptionOutSchema,
)
from site_inventory.services.inventory.daily_consumption_service import (
    create_daily_consumption,
    get_daily_consumption,
    list_daily_consumptions,
)
from site_inventory.utils.check_roles import require_role
from site_inventory.utils.response import APIResponse, PageData, success_response

router = APIRouter(prefix="/daily-consumptions", tags=["Daily Consumptions"])
logger = logging.getLogger(__name__)

READ_ROLES = [STORE_KEEPER, SITE_ENGINEER, PROJECT_MANAGER]


@router.post("/", response_model=APIResponse[DailyConsumptionOutSchema])
async def create_daily_consumption_api(
    payload: DailyConsumptionCreateSchema,
    db: AsyncSession = Depends(get_db),
    user=Depends(require_role([STORE_KEEPER, SITE_ENGINEER])),
):
    logger.info(
        "Create daily consumption",
        extra={"site_id": payload.site_id, "lines": len(payload.details)},
    )

    consumption = await create_daily_consumption(db, payload, user)
    return success_response("Daily consumption recorded successfully", consumption)


@router.get("/", response_model=APIResponse[PageData[DailyConsumptionListItemSchema]])
async def list_daily_consumptions_api(
    db: AsyncSession = Depends(get_db),
    user=Depends(require_role(READ_ROLES)),
    site_id: Optional[int] = Query(None),
    search: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
):
    data = await list_daily_consumptions(
        db, site_id=site_id, search=search, page=page, page_size=page_size
    )
    return success_response("Daily consumptions fetched successfully", data)


@router.get("/{consumption_id}", response_model=APIResponse[DailyConsumptionOutSchema])
async def get_daily_consumption_api(
    consumption_id: int,
    db: AsyncSession = Depends(get_db),
    user=Depends(require_role(READ_ROLES)),
):
    consumption = await get_daily_consumption(db, consumption_id)
    return success_response("Daily consumption fetched successfully", consumption)
