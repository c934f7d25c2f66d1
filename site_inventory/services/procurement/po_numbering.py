"""Financial-year purchase order numbers: ``DCTPL/25-26/SITE01/00042``.

The financial year runs 1 April - 31 March and is taken from the server
date, not the PO date the user typed.
"""

from dataclasses import dataclass
from datetime import date

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from site_inventory.constants.error_codes import ErrorCode
from site_inventory.core.config import COMPANY_CODE
from site_inventory.core.exceptions import NotFoundError, ValidationError
from site_inventory.models.masters.site_models import Site
from site_inventory.models.procurement.purchase_order_models import PurchaseOrder

FY_START_MONTH = 4
SEQUENCE_WIDTH = 5


@dataclass(frozen=True)
class FinancialYear:
    start_date: date
    end_date: date
    label: str


def financial_year_info(today: date) -> FinancialYear:
    start_year = today.year if today.month >= FY_START_MONTH else today.year - 1
    end_year = start_year + 1
    return FinancialYear(
        start_date=date(start_year, FY_START_MONTH, 1),
        end_date=date(end_year, FY_START_MONTH - 1, 31),
        label=f"{start_year % 100:02d}-{end_year % 100:02d}",
    )


def po_prefix(fy: FinancialYear, site_code: str) -> str:
    return f"{COMPANY_CODE}/{fy.label}/{site_code}/"


def parse_sequence(purchase_order_no: str, prefix: str) -> int:
    tail = purchase_order_no[len(prefix):]
    return int(tail) if tail.isdigit() else 0


async def generate_po_number(
    db: AsyncSession,
    site_id: int,
    today: date | None = None,
) -> str:
    fy = financial_year_info(today or date.today())

    site = await db.scalar(select(Site).where(Site.id == site_id))
    if not site:
        raise NotFoundError("Invalid site", ErrorCode.SITE_NOT_FOUND)
    if not site.site_code:
        raise ValidationError(
            f"Site {site.site} has no site code; set one before raising purchase orders",
            ErrorCode.SITE_CODE_MISSING,
            {"site_id": site_id},
        )

    prefix = po_prefix(fy, site.site_code)

    # numbered by the FY label, not by the typed PO date
    taken = await db.scalars(
        select(PurchaseOrder.purchase_order_no).where(
            PurchaseOrder.purchase_order_no.startswith(prefix, autoescape=True)
        )
    )
    last_sequence = max((parse_sequence(no, prefix) for no in taken), default=0)
    return f"{prefix}{last_sequence + 1:0{SEQUENCE_WIDTH}d}"
