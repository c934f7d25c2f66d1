import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from site_inventory.constants.roles import (
    PROJECT_DIRECTOR,
    PROJECT_MANAGER,
    PURCHASE,
)
from site_inventory.core.db import get_db
from site_inventory.schemas.procurement.purchase_order_schemas import (
    PurchaseOrderApproveSchema,
    PurchaseOrderCreateSchema,
    PurchaseOrderOutSchema,
)
from site_inventory.services.procurement.purchase_order_service import (
    approve_purchase_order_level1,
    approve_purchase_order_level2,
    complete_purchase_order,
    create_purchase_order,
    get_purchase_order,
    suspend_purchase_order,
    unsuspend_purchase_order,
)
from site_inventory.utils.check_roles import require_role
from site_inventory.utils.response import APIResponse, success_response

router = APIRouter(prefix="/purchase-orders", tags=["Purchase Orders"])
logger = logging.getLogger(__name__)

APPROVER_ROLES = [PROJECT_MANAGER, PROJECT_DIRECTOR]


@router.post("/", response_model=APIResponse[PurchaseOrderOutSchema])
async def create_purchase_order_api(
    payload: PurchaseOrderCreateSchema,
    db: AsyncSession = Depends(get_db),
    user=Depends(require_role([PURCHASE])),
):
    logger.info(
        "Create purchase order",
        extra={"site_id": payload.site_id, "lines": len(payload.details)},
    )

    po = await create_purchase_order(db, payload, user)
    return success_response("Purchase order created successfully", po)


@router.get("/{po_id}", response_model=APIResponse[PurchaseOrderOutSchema])
async def get_purchase_order_api(
    po_id: int,
    db: AsyncSession = Depends(get_db),
    user=Depends(require_role([PURCHASE, PROJECT_MANAGER, PROJECT_DIRECTOR])),
):
    po = await get_purchase_order(db, po_id)
    return success_response("Purchase order fetched successfully", po)


@router.post("/{po_id}/approve-1", response_model=APIResponse[PurchaseOrderOutSchema])
async def approve_level1_api(
    po_id: int,
    payload: Optional[PurchaseOrderApproveSchema] = Body(None),
    db: AsyncSession = Depends(get_db),
    user=Depends(require_role(APPROVER_ROLES)),
):
    logger.info("Approve purchase order (level 1)", extra={"po_id": po_id, "actor_id": user.id})

    po = await approve_purchase_order_level1(db, po_id, user, payload)
    return success_response("Purchase order approved successfully", po)


@router.post("/{po_id}/approve-2", response_model=APIResponse[PurchaseOrderOutSchema])
async def approve_level2_api(
    po_id: int,
    payload: Optional[PurchaseOrderApproveSchema] = Body(None),
    db: AsyncSession = Depends(get_db),
    user=Depends(require_role([PROJECT_DIRECTOR])),
):
    logger.info("Approve purchase order (level 2)", extra={"po_id": po_id, "actor_id": user.id})

    po = await approve_purchase_order_level2(db, po_id, user, payload)
    return success_response("Purchase order approved successfully", po)


@router.post("/{po_id}/complete", response_model=APIResponse[PurchaseOrderOutSchema])
async def complete_purchase_order_api(
    po_id: int,
    db: AsyncSession = Depends(get_db),
    user=Depends(require_role([PURCHASE, PROJECT_MANAGER])),
):
    po = await complete_purchase_order(db, po_id, user)
    return success_response("Purchase order completed successfully", po)


@router.post("/{po_id}/suspend", response_model=APIResponse[PurchaseOrderOutSchema])
async def suspend_purchase_order_api(
    po_id: int,
    db: AsyncSession = Depends(get_db),
    user=Depends(require_role(APPROVER_ROLES)),
):
    logger.info("Suspend purchase order", extra={"po_id": po_id, "actor_id": user.id})

    po = await suspend_purchase_order(db, po_id, user)
    return success_response("Purchase order suspended successfully", po)


@router.post("/{po_id}/unsuspend", response_model=APIResponse[PurchaseOrderOutSchema])
async def unsuspend_purchase_order_api(
    po_id: int,
    db: AsyncSession = Depends(get_db),
    user=Depends(require_role(APPROVER_ROLES)),
):
    po = await unsuspend_purchase_order(db, po_id, user)
    return success_response("Purchase order restored successfully", po)
