"""
Pricing engine: pure functions from cart lines to receipt totals.

    subtotal = sum(unit_price * quantity)
    tax      = subtotal * tax_rate / 100
    gross    = subtotal + tax
    discount = gross * value / 100  (percent)  |  value  (fixed)
    net      = max(0, gross - discount)

Line discounts add to the order discount. Amounts are integer cents,
rounded half-up. Net never goes below zero.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Iterable

from .errors import ValidationError

DISCOUNT_PERCENT = "percent"
DISCOUNT_FIXED = "fixed"


def round_cents(amount: Decimal) -> int:
    return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _to_decimal(value) -> Decimal:
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValidationError("Discount value must be a number", details={"value": value})


@dataclass(frozen=True)
class Discount:
    kind: str = DISCOUNT_FIXED
    value: Decimal = Decimal("0")

    def __post_init__(self):
        if self.kind not in (DISCOUNT_PERCENT, DISCOUNT_FIXED):
            raise ValidationError(f"Unknown discount type '{self.kind}'")
        if not isinstance(self.value, Decimal):
            object.__setattr__(self, "value", _to_decimal(self.value))
        if not self.value.is_finite():
            raise ValidationError("Discount value must be a finite number", details={"value": str(self.value)})
        if self.value < 0:
            raise ValidationError("Discount cannot be negative")

    @classmethod
    def from_dict(cls, data: dict | None) -> "Discount | None":
        """Parse {"type": "percent"|"fixed", "value": ...}; fixed values are cents."""
        if not data:
            return None
        value = _to_decimal(data.get("value", 0))
        return cls(kind=str(data.get("type", DISCOUNT_FIXED)).lower(), value=value)

    def amount_cents(self, gross_cents: int) -> int:
        # Never more than gross; net is floored at zero either way
        if self.kind == DISCOUNT_PERCENT:
            return round_cents(Decimal(gross_cents) * min(self.value, Decimal(100)) / 100)
        return round_cents(min(self.value, Decimal(gross_cents)))


@dataclass(frozen=True)
class Totals:
    subtotal_cents: int
    tax_cents: int
    gross_cents: int
    discount_cents: int  # discount actually applied (never more than gross)
    net_cents: int

    def to_dict(self) -> dict:
        return {
            "subtotal_cents": self.subtotal_cents,
            "tax_cents": self.tax_cents,
            "gross_cents": self.gross_cents,
            "discount_cents": self.discount_cents,
            "net_cents": self.net_cents,
        }


def compute_totals(lines: Iterable, tax_rate_percent: Decimal | int | str = 0, discount: Discount | None = None) -> Totals:
    """
    Totals for lines exposing unit_price_cents, quantity and (optionally)
    discount_cents. No side effects.
    """
    rate = Decimal(str(tax_rate_percent))
    if rate < 0:
        raise ValidationError("Tax rate cannot be negative")

    subtotal = 0
    line_discounts = 0
    for line in lines:
        subtotal += line.unit_price_cents * line.quantity
        line_discounts += getattr(line, "discount_cents", 0) or 0

    tax = round_cents(Decimal(subtotal) * rate / 100)
    gross = subtotal + tax

    requested = line_discounts
    if discount is not None:
        requested += discount.amount_cents(gross)

    net = max(0, gross - requested)
    return Totals(
        subtotal_cents=subtotal,
        tax_cents=tax,
        gross_cents=gross,
        discount_cents=gross - net,
        net_cents=net,
    )
