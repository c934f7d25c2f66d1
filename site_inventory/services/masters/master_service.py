import logging
from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from site_inventory.constants.activity_codes import ActivityCode
from site_inventory.constants.error_codes import ErrorCode
from site_inventory.core.exceptions import ConflictError
from site_inventory.models.masters.item_models import Item
from site_inventory.models.masters.site_models import Site
from site_inventory.models.masters.vendor_models import Vendor
from site_inventory.schemas.masters.master_schemas import (
    ItemCreate,
    ItemOut,
    SiteCreate,
    SiteOut,
    VendorCreate,
    VendorOut,
)
from site_inventory.utils.activity_helpers import emit_activity
from site_inventory.utils.response import PageData

logger = logging.getLogger(__name__)


async def _refetch(db: AsyncSession, model, obj_id: int):
    # created_at is a server default; reload it
    return await db.scalar(
        select(model)
        .where(model.id == obj_id)
        .execution_options(populate_existing=True)
    )


async def _page(db, query, order_col, page, page_size, schema):
    total = await db.scalar(select(func.count()).select_from(query.subquery()))
    rows = await db.execute(
        query.order_by(order_col).offset((page - 1) * page_size).limit(page_size)
    )
    return PageData[schema](
        total=total or 0,
        page=page,
        page_size=page_size,
        items=[schema.model_validate(r) for r in rows.scalars().all()],
    )


# =========================
# SITES
# =========================
async def create_site(db: AsyncSession, payload: SiteCreate, user) -> SiteOut:
    if payload.site_code:
        exists = await db.scalar(select(Site.id).where(Site.site_code == payload.site_code))
        if exists:
            raise ConflictError(
                f"Site code {payload.site_code} already in use",
                ErrorCode.SITE_DUPLICATE,
            )

    site = Site(
        site=payload.site.strip(),
        site_code=payload.site_code,
        created_by_id=user.id,
        updated_by_id=user.id,
    )
    db.add(site)

    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Site already exists", ErrorCode.SITE_DUPLICATE)

    await emit_activity(db, user=user, code=ActivityCode.CREATE_SITE, target_name=site.site)
    await db.commit()

    return SiteOut.model_validate(await _refetch(db, Site, site.id))


async def list_sites(
    db: AsyncSession,
    *,
    search: Optional[str] = None,
    page: int = 1,
    page_size: int = 20,
) -> PageData[SiteOut]:
    query = select(Site)
    if search:
        term = f"%{search.strip()}%"
        query = query.where(Site.site.ilike(term) | Site.site_code.ilike(term))
    return await _page(db, query, Site.site, page, page_size, SiteOut)


# =========================
# ITEMS
# =========================
async def create_item(db: AsyncSession, payload: ItemCreate, user) -> ItemOut:
    code = payload.item_code.strip().upper()
    exists = await db.scalar(select(Item.id).where(Item.item_code == code))
    if exists:
        raise ConflictError(f"Item code {code} already in use", ErrorCode.ITEM_DUPLICATE)

    item = Item(
        item_code=code,
        item=payload.item.strip(),
        unit=payload.unit,
        is_expiry_date=payload.is_expiry_date,
        created_by_id=user.id,
        updated_by_id=user.id,
    )
    db.add(item)

    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Item already exists", ErrorCode.ITEM_DUPLICATE)

    await emit_activity(db, user=user, code=ActivityCode.CREATE_ITEM, target_name=item.item_code)
    await db.commit()

    return ItemOut.model_validate(await _refetch(db, Item, item.id))


async def list_items(
    db: AsyncSession,
    *,
    search: Optional[str] = None,
    page: int = 1,
    page_size: int = 20,
) -> PageData[ItemOut]:
    query = select(Item)
    if search:
        term = f"%{search.strip()}%"
        query = query.where(Item.item.ilike(term) | Item.item_code.ilike(term))
    return await _page(db, query, Item.item_code, page, page_size, ItemOut)


# =========================
# VENDORS
# =========================
async def create_vendor(db: AsyncSession, payload: VendorCreate, user) -> VendorOut:
    name = payload.vendor_name.strip()
    exists = await db.scalar(
        select(Vendor.id).where(func.lower(Vendor.vendor_name) == name.lower())
    )
    if exists:
        raise ConflictError("Vendor already exists", ErrorCode.VENDOR_DUPLICATE)

    vendor = Vendor(
        vendor_name=name,
        gst_no=payload.gst_no,
        created_by_id=user.id,
        updated_by_id=user.id,
    )
    db.add(vendor)
    await db.flush()

    await emit_activity(db, user=user, code=ActivityCode.CREATE_VENDOR, target_name=vendor.vendor_name)
    await db.commit()

    return VendorOut.model_validate(await _refetch(db, Vendor, vendor.id))


async def list_vendors(
    db: AsyncSession,
    *,
    search: Optional[str] = None,
    page: int = 1,
    page_size: int = 20,
) -> PageData[VendorOut]:
    query = select(Vendor)
    if search:
        query = query.where(Vendor.vendor_name.ilike(f"%{search.strip()}%"))
    return await _page(db, query, Vendor.vendor_name, page, page_size, VendorOut)
