import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from site_inventory.core.db import AsyncSessionLocal

from site_inventory.services.inventory.site_stock_service import reconcile_all_sites
from site_inventory.services.budget.site_budget_service import refresh_all_budgets

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler()


@scheduler.scheduled_job("cron", hour=0, minute=5)  # daily at 00:05
async def reconcile_stock_job():
    async with AsyncSessionLocal() as db:
        await reconcile_all_sites(db)


@scheduler.scheduled_job("cron", hour=0, minute=20)  # daily @ 00:20
async def refresh_budgets_job():
    async with AsyncSessionLocal() as db:
        refreshed = await refresh_all_budgets(db)
    logger.info("Nightly budget refresh done, %d budget(s)", refreshed)
