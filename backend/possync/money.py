from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

TWO_PLACES = Decimal("0.01")
ZERO = Decimal("0.00")


def to_decimal(value: Any) -> Decimal:
    """
    Coerce a money-ish value to Decimal.

    Floats go through str() so 0.1 stays 0.1. None and "" are zero.
    """
    if value is None or value == "":
        return ZERO
    if isinstance(value, bool):
        raise ValueError("amount must be a number")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float)):
        result = Decimal(str(value))
    else:
        text = str(value).strip().replace("$", "").replace(",", "")
        if not text:
            return ZERO
        try:
            result = Decimal(text)
        except InvalidOperation:
            raise ValueError(f"invalid amount: {value!r}")
    if not result.is_finite():
        raise ValueError(f"invalid amount: {value!r}")
    return result


def round2(value: Decimal) -> Decimal:
    """Round to cents, half-up."""
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def to_cents(value: Any) -> int:
    return int(round2(to_decimal(value)) * 100)


def optional_cents(value: Any) -> int | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return to_cents(value)


def from_cents(cents: int | None) -> Decimal | None:
    if cents is None:
        return None
    return (Decimal(cents) / 100).quantize(TWO_PLACES)


def format_cents(cents: int | None) -> str:
    """Upstream wire format for amounts, e.g. 1050 -> "10.50"."""
    if cents is None:
        return ""
    return str(from_cents(cents))
