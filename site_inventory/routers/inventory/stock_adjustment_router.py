import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from site_inventory.constants.roles import PROJECT_MANAGER, SITE_ENGINEER, STORE_KEEPER
from site_inventory.core.db import get_db
from site_inventory.schemas.inventory.stock_adjustment_schemas import (
    StockAdjustmentCreateSchema,
    StockAdjustmentOutSchema,
)
from site_inventory.services.inventory.stock_adjustment_service import (
    create_stock_adjustment,
    get_stock_adjustment,
)
from site_inventory.utils.check_roles import require_role
from site_inventory.utils.response import APIResponse, success_response

router = APIRouter(prefix="/stock-adjustments", tags=["Stock Adjustments"])
logger = logging.getLogger(__name__)


@router.post("/", response_model=APIResponse[StockAdjustmentOutSchema])
async def create_stock_adjustment_api(
    payload: StockAdjustmentCreateSchema,
    db: AsyncSession = Depends(get_db),
    user=Depends(require_role([STORE_KEEPER])),
):
    logger.info(
        "Create stock adjustment",
        extra={"site_id": payload.site_id, "lines": len(payload.details)},
    )

    adjustment = await create_stock_adjustment(db, payload, user)
    return success_response("Stock adjustment posted successfully", adjustment)


@router.get("/{adjustment_id}", response_model=APIResponse[StockAdjustmentOutSchema])
async def get_stock_adjustment_api(
    adjustment_id: int,
    db: AsyncSession = Depends(get_db),
    user=Depends(require_role([STORE_KEEPER, SITE_ENGINEER, PROJECT_MANAGER])),
):
    adjustment = await get_stock_adjustment(db, adjustment_id)
    return success_response("Stock adjustment fetched successfully", adjustment)
