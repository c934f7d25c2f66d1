import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from site_inventory.constants.roles import (
    PROJECT_MANAGER,
    PURCHASE,
    SITE_ENGINEER,
    STORE_KEEPER,
)
from site_inventory.core.db import get_db
from site_inventory.schemas.inventory.inward_challan_schemas import (
    InwardChallanCreateSchema,
    InwardChallanListItemSchema,
    InwardChallanOutSchema,
)
from site_inventory.services.inventory.inward_challan_service import (
    create_inward_challan,
    get_inward_challan,
    list_inward_challans,
)
from site_inventory.utils.check_roles import require_role
from site_inventory.utils.response import APIResponse, PageData, success_response

router = APIRouter(prefix="/inward-delivery-challans", tags=["Inward Delivery Challans"])
logger = logging.getLogger(__name__)

READ_ROLES = [STORE_KEEPER, SITE_ENGINEER, PURCHASE, PROJECT_MANAGER]


@router.post("/", response_model=APIResponse[InwardChallanOutSchema])
async def create_inward_challan_api(
    payload: InwardChallanCreateSchema,
    db: AsyncSession = Depends(get_db),
    user=Depends(require_role([STORE_KEEPER])),
):
    logger.info(
        "Create inward challan",
        extra={"purchase_order_id": payload.purchase_order_id, "lines": len(payload.details)},
    )

    challan = await create_inward_challan(db, payload, user)
    return success_response("Inward delivery challan created successfully", challan)


@router.get("/", response_model=APIResponse[PageData[InwardChallanListItemSchema]])
async def list_inward_challans_api(
    db: AsyncSession = Depends(get_db),
    user=Depends(require_role(READ_ROLES)),
    site_id: Optional[int] = Query(None),
    purchase_order_id: Optional[int] = Query(None),
    search: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
):
    data = await list_inward_challans(
        db,
        site_id=site_id,
        purchase_order_id=purchase_order_id,
        search=search,
        page=page,
        page_size=page_size,
    )
    return success_response("Inward delivery challans fetched successfully", data)


@router.get("/{challan_id}", response_model=APIResponse[InwardChallanOutSchema])
async def get_inward_challan_api(
    challan_id: int,
    db: AsyncSession = Depends(get_db),
    user=Depends(require_role(READ_ROLES)),
):
    challan = await get_inward_challan(db, challan_id)
    return success_response("Inward delivery challan fetched successfully", challan)
