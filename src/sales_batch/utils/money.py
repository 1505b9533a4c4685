"""Decimal helpers for sales amounts and percentages."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional, Union

ZERO = Decimal("0")
ONE_DECIMAL = Decimal("0.1")

Number = Union[int, float]


def to_decimal(value: Any) -> Decimal:
    """Coerce upstream numerics to Decimal; missing or unparsable values are zero."""

    if value is None or isinstance(value, bool):
        return ZERO
    if isinstance(value, Decimal):
        return value
    try:
        result = Decimal(str(value).strip() or "0")
    except (InvalidOperation, ValueError):
        return ZERO
    return result if result.is_finite() else ZERO


def round_one(value: Decimal) -> Decimal:
    return value.quantize(ONE_DECIMAL, rounding=ROUND_HALF_UP)


def percent_change(current: Decimal, previous: Decimal) -> Optional[Decimal]:
    """Relative change of ``current`` over ``previous`` in percent.

    Returns ``None`` when ``previous`` is not positive, since the change is
    undefined there and must not be reported as zero.
    """

    if previous <= 0:
        return None
    return round_one((current - previous) / previous * 100)


def to_number(value: Optional[Decimal]) -> Optional[Number]:
    """Render a Decimal as a JSON number (int when integral)."""

    if value is None:
        return None
    if value == value.to_integral_value():
        return int(value)
    return float(value)
