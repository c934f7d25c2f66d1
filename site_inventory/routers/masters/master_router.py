import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from site_inventory.constants.roles import PROJECT_MANAGER, PURCHASE, STORE_KEEPER
from site_inventory.core.db import get_db
from site_inventory.schemas.masters.master_schemas import (
    ItemCreate,
    ItemOut,
    SiteCreate,
    SiteOut,
    VendorCreate,
    VendorOut,
)
from site_inventory.services.masters.master_service import (
    create_item,
    create_site,
    create_vendor,
    list_items,
    list_sites,
    list_vendors,
)
from site_inventory.utils.check_roles import require_role
from site_inventory.utils.get_user import get_current_user
from site_inventory.utils.response import APIResponse, PageData, success_response

router = APIRouter(tags=["Masters"])
logger = logging.getLogger(__name__)


# =========================
# SITES
# =========================
@router.post("/sites/", response_model=APIResponse[SiteOut])
async def create_site_api(
    payload: SiteCreate,
    db: AsyncSession = Depends(get_db),
    user=Depends(require_role([PROJECT_MANAGER])),
):
    site = await create_site(db, payload, user)
    return success_response("Site created successfully", site)


@router.get("/sites/", response_model=APIResponse[PageData[SiteOut]])
async def list_sites_api(
    db: AsyncSession = Depends(get_db),
    user=Depends(get_current_user),
    search: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
):
    data = await list_sites(db, search=search, page=page, page_size=page_size)
    return success_response("Sites fetched successfully", data)


# =========================
# ITEMS
# =========================
@router.post("/items/", response_model=APIResponse[ItemOut])
async def create_item_api(
    payload: ItemCreate,
    db: AsyncSession = Depends(get_db),
    user=Depends(require_role([STORE_KEEPER, PURCHASE])),
):
    item = await create_item(db, payload, user)
    return success_response("Item created successfully", item)


@router.get("/items/", response_model=APIResponse[PageData[ItemOut]])
async def list_items_api(
    db: AsyncSession = Depends(get_db),
    user=Depends(get_current_user),
    search: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
):
    data = await list_items(db, search=search, page=page, page_size=page_size)
    return success_response("Items fetched successfully", data)


# =========================
# VENDORS
# =========================
@router.post("/vendors/", response_model=APIResponse[VendorOut])
async def create_vendor_api(
    payload: VendorCreate,
    db: AsyncSession = Depends(get_db),
    user=Depends(require_role([PURCHASE])),
):
    logger.info("Create vendor", extra={"vendor_name": payload.vendor_name})

    vendor = await create_vendor(db, payload, user)
    return success_response("Vendor created successfully", vendor)


@router.get("/vendors/", response_model=APIResponse[PageData[VendorOut]])
async def list_vendors_api(
    db: AsyncSession = Depends(get_db),
    user=Depends(get_current_user),
    search: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
):
    data = await list_vendors(db, search=search, page=page, page_size=page_size)
    return success_response("Vendors fetched successfully", data)
