from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from site_inventory.constants.roles import (
    PROJECT_MANAGER,
    SITE_ENGINEER,
    STORE_KEEPER,
)
from site_inventory.core.db import get_db
from site_inventory.schemas.inventory.stock_schemas import (
    SiteItemOutSchema,
    StockLedgerOutSchema,
    StockReconciliationSchema,
)
from site_inventory.services.inventory.site_stock_service import (
    list_site_stock,
    list_stock_ledger,
    reconcile_site_stock,
)
from site_inventory.utils.check_roles import require_role
from site_inventory.utils.response import APIResponse, PageData, success_response

router = APIRouter(prefix="/stocks", tags=["Stocks"])

READ_ROLES = [STORE_KEEPER, SITE_ENGINEER, PROJECT_MANAGER]


@router.get("/sites/{site_id}", response_model=APIResponse[PageData[SiteItemOutSchema]])
async def list_site_stock_api(
    site_id: int,
    db: AsyncSession = Depends(get_db),
    user=Depends(require_role(READ_ROLES)),
    search: Optional[str] = Query(None),
    in_stock_only: bool = Query(False),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
):
    data = await list_site_stock(
        db,
        site_id,
        search=search,
        in_stock_only=in_stock_only,
        page=page,
        page_size=page_size,
    )
    return success_response("Site stock fetched successfully", data)


@router.get("/ledger", response_model=APIResponse[PageData[StockLedgerOutSchema]])
async def list_stock_ledger_api(
    db: AsyncSession = Depends(get_db),
    user=Depends(require_role(READ_ROLES)),
    site_id: Optional[int] = Query(None),
    item_id: Optional[int] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
):
    data = await list_stock_ledger(
        db,
        site_id=site_id,
        item_id=item_id,
        page=page,
        page_size=page_size,
    )
    return success_response("Stock ledger fetched successfully", data)


@router.get("/sites/{site_id}/reconcile", response_model=APIResponse[StockReconciliationSchema])
async def reconcile_site_stock_api(
    site_id: int,
    db: AsyncSession = Depends(get_db),
    user=Depends(require_role([PROJECT_MANAGER])),
):
    report = await reconcile_site_stock(db, site_id)
    return success_response("Stock reconciliation completed", report)
