# site_inventory/utils/decimal_utils.py
from decimal import Decimal, ROUND_HALF_UP

TWOPLACES = Decimal("0.01")
FOURPLACES = Decimal("0.0001")
ZERO = Decimal("0")


def _as_decimal(value) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def to_decimal(value) -> Decimal:
    """Money: two places, half-up."""
    return _as_decimal(value).quantize(TWOPLACES, rounding=ROUND_HALF_UP)


def to_qty(value) -> Decimal:
    return _as_decimal(value).quantize(FOURPLACES, rounding=ROUND_HALF_UP)


def to_rate(value) -> Decimal:
    return _as_decimal(value).quantize(FOURPLACES, rounding=ROUND_HALF_UP)


def qty_equal(a, b) -> bool:
    """Quantities compared at two decimal places."""
    return to_decimal(a) == to_decimal(b)
