"""Decimal helpers shared by the costing, validation and allocation services."""

from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional

ZERO = Decimal("0")
HUNDRED = Decimal("100")

CENT = Decimal("0.01")
UNIT_COST = Decimal("0.0001")
QUANTITY = Decimal("0.001")


def to_decimal(value: Any, default: Decimal = ZERO) -> Decimal:
    """Coerce floats, ints, strings and None to Decimal."""
    if value is None:
        return default
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def round_unit_cost(value: Decimal) -> Decimal:
    return value.quantize(UNIT_COST, rounding=ROUND_HALF_UP)


def percentage(part: Decimal, whole: Decimal) -> Decimal:
    """``part`` as a percentage of ``whole``; zero when ``whole`` is zero."""
    if whole == ZERO:
        return ZERO
    return part / whole * HUNDRED


def as_float(value: Optional[Decimal], places: int = 4) -> Optional[float]:
    if value is None:
        return None
    return round(float(value), places)
