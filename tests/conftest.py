import os

os.environ.setdefault("APP_ENV", "development")
os.environ.setdefault("DB_TYPE", "sqlite")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_ACCESS_SECRET_KEY", "test-secret")

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from site_inventory.constants.stock_document_type import StockDocumentType
from site_inventory.core.db import Base, enforce_sqlite_foreign_keys, make_session_factory
from site_inventory.models.masters.item_models import Item
from site_inventory.models.masters.site_models import Site
from site_inventory.models.users.user_models import User
from site_inventory.services.inventory.stock_ledger_service import (
    apply_batch_receipt,
    get_or_create_batch,
    get_or_create_site_item,
    receive_stock,
)

EXPIRY = date(2027, 1, 31)


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    enforce_sqlite_foreign_keys(engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


# =========================
# USERS
# =========================
async def _user(db, username, role):
    user = User(username=username, name=username.split("@")[0], role=role)
    db.add(user)
    await db.commit()
    return user


@pytest.fixture
async def store_keeper(db):
    return await _user(db, "store@site.test", "store_keeper")


@pytest.fixture
async def manager(db):
    return await _user(db, "manager@site.test", "project_manager")


@pytest.fixture
async def engineer(db):
    return await _user(db, "engineer@site.test", "site_engineer")


@pytest.fixture
async def director(db):
    return await _user(db, "director@site.test", "project_director")


@pytest.fixture
async def purchaser(db):
    return await _user(db, "purchase@site.test", "purchase")


# =========================
# MASTERS
# =========================
@pytest.fixture
async def site_a(db):
    site = Site(site="Andheri Tower", site_code="SITEA")
    db.add(site)
    await db.commit()
    return site


@pytest.fixture
async def site_b(db):
    site = Site(site="Bandra Mall", site_code="SITEB")
    db.add(site)
    await db.commit()
    return site


@pytest.fixture
async def site_without_code(db):
    site = Site(site="Chembur Yard")
    db.add(site)
    await db.commit()
    return site


@pytest.fixture
async def cement(db):
    item = Item(item_code="CEM-OPC53", item="OPC 53 Cement", unit="bag")
    db.add(item)
    await db.commit()
    return item


@pytest.fixture
async def steel(db):
    item = Item(item_code="STL-TMT12", item="TMT Bar 12mm", unit="kg")
    db.add(item)
    await db.commit()
    return item


@pytest.fixture
async def admixture(db):
    item = Item(
        item_code="ADM-PLAST",
        item="Plasticiser admixture",
        unit="ltr",
        is_expiry_date=True,
    )
    db.add(item)
    await db.commit()
    return item


# =========================
# STOCK SEEDING
# =========================
async def seed_stock(db, *, site, item, qty, rate, actor, batch_number=None, expiry_date=EXPIRY):
    """Receive opening stock through the ledger, optionally into a batch."""
    site_item = await get_or_create_site_item(db, site.id, item.id, actor)
    await receive_stock(
        db,
        site_item=site_item,
        qty=Decimal(str(qty)),
        rate=Decimal(str(rate)),
        document_type=StockDocumentType.STOCK_ADJUSTMENT,
        document_id=0,
        actor=actor,
    )
    if batch_number:
        batch = await get_or_create_batch(db, site_item, batch_number, expiry_date)
        apply_batch_receipt(batch, Decimal(str(qty)), Decimal(str(rate)))
    await db.commit()
    return site_item


@pytest.fixture
def seed():
    return seed_stock
