"""Decimal money helpers. Rupees with paise, half-up rounding."""

from decimal import ROUND_HALF_UP, Decimal
from typing import Any

ZERO = Decimal("0")
HUNDRED = Decimal("100")
PAISE = Decimal("0.01")
RUPEE = Decimal("1")


def to_decimal(value: Any) -> Decimal:
    """Parse a money value exactly. Floats go through str() to drop binary noise."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def round_money(value: Decimal) -> Decimal:
    """Round to paise, half away from zero."""
    return value.quantize(PAISE, rounding=ROUND_HALF_UP)


def round_rupee(value: Decimal) -> Decimal:
    """Round to whole rupees, half away from zero."""
    return value.quantize(RUPEE, rounding=ROUND_HALF_UP)
