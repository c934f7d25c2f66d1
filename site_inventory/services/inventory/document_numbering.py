"""Block numbers shared by stock documents: 0001-0001 ... 0001-9999, 0002-0001."""

import re

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

BLOCK_NO_PATTERN = re.compile(r"^(\d{4})-(\d{4})$")
BLOCK_MAX = 9999


def next_block_number(latest: str | None) -> str:
    left, right = 1, 1

    match = BLOCK_NO_PATTERN.match(latest or "")
    if match:
        left = int(match.group(1))
        right = int(match.group(2)) + 1
        if right > BLOCK_MAX:
            left += 1
            right = 1

    return f"{left:04d}-{right:04d}"


async def generate_block_number(db: AsyncSession, column) -> str:
    """Next number after the highest well-formed value in ``column``.

    Hand-typed numbers that do not match the pattern are skipped.
    """
    rows = await db.execute(
        select(column)
        .where(column.like("%-%"))
        .order_by(column.desc())
        .limit(50)
    )
    latest = next(
        (no for no in rows.scalars().all() if BLOCK_NO_PATTERN.match(no)),
        None,
    )
    return next_block_number(latest)
