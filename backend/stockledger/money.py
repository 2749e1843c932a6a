"""
Money arithmetic helpers.

Amounts travel as JSON numbers (rupees with paise as decimals). Internally
every computation goes through Decimal and is quantized half-up so that
10.005 -> 10.01 regardless of binary float representation.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from .errors import ValidationError

TWO_PLACES = Decimal("0.01")
ZERO = Decimal("0")
HUNDRED = Decimal("100")


def to_decimal(value, field: str = "amount") -> Decimal:
    if value is None or value == "":
        return ZERO
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    if isinstance(value, Decimal):
        number = value
    else:
        try:
            # str() keeps 0.1 as 0.1 instead of its binary expansion
            number = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            raise ValidationError(f"{field} must be a number")
    if not number.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    return number


def round2(value) -> Decimal:
    return to_decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def round_whole(value) -> Decimal:
    return to_decimal(value).quantize(Decimal("1"), rounding=ROUND_HALF_UP)


def percent_of(base: Decimal, pct) -> Decimal:
    return base * to_decimal(pct, "percent") / HUNDRED


def as_number(value: Decimal) -> float:
    """JSON-friendly representation of a quantized amount."""
    return float(value)
