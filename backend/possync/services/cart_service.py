# Overview: Pure cart pricing used before an order is committed.

"""
Cart pricing rules (authoritative)

    line_subtotal = round2(unit_price * quantity)
    subtotal      = sum(line_subtotal)
    tax_base      = max(subtotal - discount, 0)
    tax           = round2(tax_base * tax_rate)
    total         = tax_base + tax

- Rounding is half-up to cents, applied to each stored value only.
- A negative discount counts as no discount.
- No hidden state: the same inputs always produce the same totals.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable, Mapping

from ..errors import InvalidOrder
from ..money import ZERO, round2, to_decimal

DEFAULT_TAX_RATE = Decimal("0.10")


@dataclass(frozen=True)
class CartLine:
    unit_price: Decimal
    quantity: int

    @property
    def subtotal(self) -> Decimal:
        return round2(self.unit_price * self.quantity)


@dataclass(frozen=True)
class CartTotals:
    lines: tuple[CartLine, ...]
    subtotal: Decimal
    discount: Decimal
    tax_base: Decimal
    tax: Decimal
    total: Decimal
    tax_rate: Decimal

    def to_dict(self) -> dict:
        return {
            "subtotal": str(self.subtotal),
            "discount": str(self.discount),
            "tax_base": str(self.tax_base),
            "tax": str(self.tax),
            "total": str(self.total),
            "tax_rate": str(self.tax_rate),
            "line_subtotals": [str(line.subtotal) for line in self.lines],
        }


def _coerce_line(raw: Any, index: int) -> CartLine:
    if isinstance(raw, CartLine):
        return raw
    if not isinstance(raw, Mapping):
        raise InvalidOrder(f"Line {index + 1} must be an object")

    quantity = raw.get("quantity")
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvalidOrder(f"Line {index + 1}: quantity must be a positive integer")

    try:
        unit_price = to_decimal(raw.get("unit_price"))
    except ValueError:
        raise InvalidOrder(f"Line {index + 1}: unit_price is not a valid amount")
    if unit_price < 0:
        raise InvalidOrder(f"Line {index + 1}: unit_price cannot be negative")

    return CartLine(unit_price=unit_price, quantity=quantity)


def resolve_tax_rate(value: Any = None) -> Decimal:
    if value is None or value == "":
        return DEFAULT_TAX_RATE
    try:
        rate = to_decimal(value)
    except ValueError:
        raise InvalidOrder(f"Invalid tax rate: {value!r}")
    if rate < 0:
        raise InvalidOrder("Tax rate cannot be negative")
    return rate


def calculate_totals(
    lines: Iterable[Any],
    discount: Any = 0,
    tax_rate: Any = None,
) -> CartTotals:
    """
    Price a cart.

    Args:
        lines: CartLine objects or mappings with "unit_price" and "quantity"
        discount: flat amount taken off the subtotal before tax
        tax_rate: fraction (0.10 = 10%); defaults to DEFAULT_TAX_RATE

    Raises:
        InvalidOrder: on a malformed line, discount or tax rate
    """
    cart_lines = tuple(_coerce_line(raw, i) for i, raw in enumerate(lines))
    rate = resolve_tax_rate(tax_rate)

    try:
        discount_value = round2(to_decimal(discount))
    except ValueError:
        raise InvalidOrder("Discount is not a valid amount")
    if discount_value < 0:
        discount_value = ZERO

    subtotal = sum((line.subtotal for line in cart_lines), ZERO)
    tax_base = max(subtotal - discount_value, ZERO)
    tax = round2(tax_base * rate)
    total = tax_base + tax

    return CartTotals(
        lines=cart_lines,
        subtotal=subtotal,
        discount=discount_value,
        tax_base=tax_base,
        tax=tax,
        total=total,
        tax_rate=rate,
    )
