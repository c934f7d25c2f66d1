import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from site_inventory.constants.roles import (
    PROJECT_MANAGER,
    SITE_ENGINEER,
    STORE_KEEPER,
)
from site_inventory.core.db import get_db
from site_inventory.models.enums.challan_status import ChallanStatus
from site_inventory.schemas.inventory.outward_challan_schemas import (
    ChallanAcceptSchema,
    ChallanApproveSchema,
    OutwardChallanCreateSchema,
    OutwardChallanListItemSchema,
    OutwardChallanOutSchema,
)
from site_inventory.services.inventory.outward_challan_service import (
    accept_challan,
    approve_challan,
    create_outward_challan,
    get_outward_challan,
    list_outward_challans,
)
from site_inventory.utils.check_roles import require_role
from site_inventory.utils.response import APIResponse, PageData, success_response

router = APIRouter(prefix="/outward-delivery-challans", tags=["Outward Delivery Challans"])
logger = logging.getLogger(__name__)

READ_ROLES = [STORE_KEEPER, SITE_ENGINEER, PROJECT_MANAGER]


@router.post("/", response_model=APIResponse[OutwardChallanOutSchema])
async def create_outward_challan_api(
    payload: OutwardChallanCreateSchema,
    db: AsyncSession = Depends(get_db),
    user=Depends(require_role([STORE_KEEPER, SITE_ENGINEER])),
):
    logger.info(
        "Create outward challan",
        extra={
            "from_site_id": payload.from_site_id,
            "to_site_id": payload.to_site_id,
            "lines": len(payload.details),
        },
    )

    challan = await create_outward_challan(db, payload, user)
    return success_response("Outward delivery challan created successfully", challan)


@router.get("/", response_model=APIResponse[PageData[OutwardChallanListItemSchema]])
async def list_outward_challans_api(
    db: AsyncSession = Depends(get_db),
    user=Depends(require_role(READ_ROLES)),
    status: Optional[ChallanStatus] = Query(None),
    from_site_id: Optional[int] = Query(None),
    to_site_id: Optional[int] = Query(None),
    search: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
):
    data = await list_outward_challans(
        db,
        status=status,
        from_site_id=from_site_id,
        to_site_id=to_site_id,
        search=search,
        page=page,
        page_size=page_size,
    )
    return success_response("Outward delivery challans fetched successfully", data)


@router.get("/{challan_id}", response_model=APIResponse[OutwardChallanOutSchema])
async def get_outward_challan_api(
    challan_id: int,
    db: AsyncSession = Depends(get_db),
    user=Depends(require_role(READ_ROLES)),
):
    challan = await get_outward_challan(db, challan_id)
    return success_response("Outward delivery challan fetched successfully", challan)


@router.post("/{challan_id}/approve", response_model=APIResponse[OutwardChallanOutSchema])
async def approve_challan_api(
    challan_id: int,
    payload: ChallanApproveSchema,
    db: AsyncSession = Depends(get_db),
    user=Depends(require_role([PROJECT_MANAGER, STORE_KEEPER])),
):
    logger.info(
        "Approve outward challan",
        extra={"challan_id": challan_id, "actor_id": user.id},
    )

    challan = await approve_challan(db, challan_id, user, payload)
    return success_response("Outward delivery challan approved successfully", challan)


@router.post("/{challan_id}/accept", response_model=APIResponse[OutwardChallanOutSchema])
async def accept_challan_api(
    challan_id: int,
    payload: ChallanAcceptSchema,
    db: AsyncSession = Depends(get_db),
    user=Depends(require_role([STORE_KEEPER, SITE_ENGINEER])),
):
    logger.info(
        "Accept outward challan",
        extra={"challan_id": challan_id, "actor_id": user.id},
    )

    challan = await accept_challan(db, challan_id, user, payload)
    return success_response("Outward delivery challan accepted successfully", challan)
