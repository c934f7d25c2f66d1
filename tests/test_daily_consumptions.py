from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select, func

from site_inventory.constants.error_codes import ErrorCode
from site_inventory.constants.stock_document_type import StockDocumentType
from site_inventory.core.exceptions import NotFoundError, ValidationError
from site_inventory.models.inventory.site_item_models import SiteItem
from site_inventory.models.inventory.stock_ledger_models import StockLedger
from site_inventory.schemas.inventory.daily_consumption_schemas import DailyConsumptionCreateSchema
from site_inventory.services.inventory.daily_consumption_service import (
    create_daily_consumption,
    list_daily_consumptions,
)

USED_ON = date(2025, 8, 4)


def _payload(site, details, **extra):
    return DailyConsumptionCreateSchema(
        daily_consumption_date=USED_ON,
        site_id=site.id,
        details=details,
        **extra,
    )


async def _closing(db, site_id, item_id):
    return await db.scalar(
        select(SiteItem.closing_stock).where(
            SiteItem.site_id == site_id, SiteItem.item_id == item_id
        )
    )


async def test_consumption_issues_at_running_rate(db, seed, site_a, cement, steel, store_keeper):
    await seed(db, site=site_a, item=cement, qty=40, rate=380, actor=store_keeper)
    await seed(db, site=site_a, item=steel, qty=1000, rate=62.5, actor=store_keeper)

    consumption = await create_daily_consumption(
        db,
        _payload(
            site_a,
            [
                {"item_id": cement.id, "qty": "12"},
                {"item_id": steel.id, "qty": "250"},
            ],
        ),
        store_keeper,
    )

    assert consumption.daily_consumption_no == "0001-0001"
    assert [(d.rate, d.amount) for d in consumption.details] == [
        (Decimal("380"), Decimal("4560.00")),
        (Decimal("62.5"), Decimal("15625.00")),
    ]
    assert consumption.total_amount == Decimal("20185.00")

    assert await _closing(db, site_a.id, cement.id) == Decimal("28")
    assert await _closing(db, site_a.id, steel.id) == Decimal("750")

    rows = (
        await db.execute(
            select(StockLedger).where(
                StockLedger.document_type == StockDocumentType.DAILY_CONSUMPTION,
                StockLedger.document_id == consumption.id,
            )
        )
    ).scalars().all()
    assert sorted((r.item_id, r.issued_qty) for r in rows) == sorted(
        [(cement.id, Decimal("12")), (steel.id, Decimal("250"))]
    )


async def test_repeated_item_is_checked_on_the_total(db, seed, site_a, cement, store_keeper):
    await seed(db, site=site_a, item=cement, qty=10, rate=380, actor=store_keeper)
    before = await db.scalar(select(func.count()).select_from(StockLedger))

    with pytest.raises(ValidationError) as exc:
        await create_daily_consumption(
            db,
            _payload(
                site_a,
                [
                    {"item_id": cement.id, "qty": "6"},
                    {"item_id": cement.id, "qty": "6"},
                ],
            ),
            store_keeper,
        )

    assert exc.value.error_code == ErrorCode.STOCK_INSUFFICIENT
    assert exc.value.details["available"] == "10.0000"
    assert await _closing(db, site_a.id, cement.id) == Decimal("10")
    assert await db.scalar(select(func.count()).select_from(StockLedger)) == before


async def test_item_never_stocked_at_site_is_insufficient(db, site_a, steel, store_keeper):
    with pytest.raises(ValidationError) as exc:
        await create_daily_consumption(
            db, _payload(site_a, [{"item_id": steel.id, "qty": "1"}]), store_keeper
        )

    assert exc.value.error_code == ErrorCode.STOCK_INSUFFICIENT


async def test_unknown_item_is_rejected(db, site_a, store_keeper):
    with pytest.raises(NotFoundError) as exc:
        await create_daily_consumption(
            db, _payload(site_a, [{"item_id": 9999, "qty": "1"}]), store_keeper
        )

    assert exc.value.error_code == ErrorCode.ITEM_NOT_FOUND


async def test_list_is_scoped_to_site(db, seed, site_a, site_b, cement, store_keeper):
    await seed(db, site=site_a, item=cement, qty=10, rate=380, actor=store_keeper)
    await seed(db, site=site_b, item=cement, qty=10, rate=380, actor=store_keeper)

    await create_daily_consumption(db, _payload(site_a, [{"item_id": cement.id, "qty": "1"}]), store_keeper)
    await create_daily_consumption(db, _payload(site_b, [{"item_id": cement.id, "qty": "2"}]), store_keeper)

    page = await list_daily_consumptions(db, site_id=site_b.id)

    assert page.total == 1
    assert page.items[0].site_id == site_b.id
    assert page.items[0].total_amount == Decimal("760.00")
