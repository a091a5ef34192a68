"""
In-memory cart for a single checkout session.

Not shared between threads or operators. Quantities are held to the
product's current stock; a request for more is clamped to what is
available and the clamp is kept on the cart so checkout can report it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal

from . import catalog_service
from .errors import (
    CartLineNotFoundError,
    InvalidQuantityError,
    OutOfStockError,
    PriceOverrideError,
    ValidationError,
)
from .pricing import Discount, Totals, compute_totals

logger = logging.getLogger(__name__)


@dataclass
class CartLine:
    line_id: int
    product_id: int
    name: str
    base_price_cents: int
    unit_price_cents: int
    quantity: int
    available_stock: int
    discount_cents: int = 0
    unit_cost_cents: int = 0

    @property
    def line_total_cents(self) -> int:
        return self.unit_price_cents * self.quantity

    def to_dict(self) -> dict:
        return {
            "line_id": self.line_id,
            "product_id": self.product_id,
            "name": self.name,
            "unit_price_cents": self.unit_price_cents,
            "quantity": self.quantity,
            "discount_cents": self.discount_cents,
            "line_total_cents": self.line_total_cents,
        }


@dataclass
class Cart:
    price_override_policy: str = "allow"
    lines: list[CartLine] = field(default_factory=list)
    _next_line_id: int = 1
    clamp_warnings: list[dict] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.lines)

    @property
    def is_empty(self) -> bool:
        return not self.lines

    def _line(self, line_id: int) -> CartLine:
        for line in self.lines:
            if line.line_id == line_id:
                return line
        raise CartLineNotFoundError(f"Cart line {line_id} not found", details={"line_id": line_id})

    def _clamp(self, line: CartLine, quantity: int) -> int:
        if quantity > line.available_stock:
            logger.info(
                "Clamped quantity for product %s from %s to available stock %s",
                line.product_id, quantity, line.available_stock,
            )
            self.clamp_warnings.append({
                "type": "cart.quantity_clamped",
                "product_id": line.product_id,
                "requested": quantity,
                "quantity": line.available_stock,
                "message": f"Only {line.available_stock} of {line.name} in stock; {quantity} requested",
            })
            return line.available_stock
        return quantity

    def add(self, product, quantity: int = 1) -> CartLine:
        """
        Add a product, merging with an existing line for the same product.
        The resulting quantity never exceeds the product's stock.
        """
        if quantity < 1:
            raise InvalidQuantityError("Quantity must be at least 1", details={"quantity": quantity})
        if product.stock_quantity <= 0:
            raise OutOfStockError(f"{product.name} is out of stock", details={"product_id": product.id})

        for line in self.lines:
            if line.product_id == product.id:
                line.available_stock = product.stock_quantity
                line.quantity = self._clamp(line, line.quantity + quantity)
                return line

        line = CartLine(
            line_id=self._next_line_id,
            product_id=product.id,
            name=product.name,
            base_price_cents=product.price_cents,
            unit_price_cents=product.price_cents,
            quantity=0,
            available_stock=product.stock_quantity,
            unit_cost_cents=product.cost_cents or 0,
        )
        line.quantity = self._clamp(line, quantity)
        self._next_line_id += 1
        self.lines.append(line)
        return line

    def set_quantity(self, line_id: int, quantity: int) -> CartLine:
        if quantity < 1:
            raise InvalidQuantityError("Quantity must be at least 1", details={"quantity": quantity})
        line = self._line(line_id)
        product = catalog_service.get_product(line.product_id)
        if product.stock_quantity <= 0:
            raise OutOfStockError(f"{product.name} is out of stock", details={"product_id": product.id})
        line.available_stock = product.stock_quantity
        line.quantity = self._clamp(line, quantity)
        return line

    def set_unit_price(self, line_id: int, price_cents: int) -> CartLine:
        """
        Override the charged price. Prices below the catalog price follow
        the cart's policy: allow, clamp (to catalog price), or reject.
        """
        if price_cents < 0:
            raise ValidationError("Price cannot be negative", details={"price_cents": price_cents})
        line = self._line(line_id)

        if price_cents < line.base_price_cents:
            if self.price_override_policy == "reject":
                raise PriceOverrideError(
                    "Price below catalog price is not allowed",
                    details={"product_id": line.product_id, "base_price_cents": line.base_price_cents},
                )
            if self.price_override_policy == "clamp":
                price_cents = line.base_price_cents

        line.unit_price_cents = price_cents
        return line

    def set_line_discount(self, line_id: int, discount_cents: int) -> CartLine:
        if discount_cents < 0:
            raise ValidationError("Line discount cannot be negative")
        line = self._line(line_id)
        line.discount_cents = discount_cents
        return line

    def remove(self, line_id: int) -> None:
        line = self._line(line_id)
        self.lines.remove(line)

    def clear(self) -> None:
        self.lines.clear()
        self.clamp_warnings.clear()

    def compute_totals(self, tax_rate_percent: Decimal | int | str = 0, discount: Discount | None = None) -> Totals:
        return compute_totals(self.lines, tax_rate_percent, discount)

    def snapshot(self) -> list[dict]:
        return [line.to_dict() for line in self.lines]


def cart_from_snapshot(lines: list[dict], price_override_policy: str = "allow") -> Cart:
    """
    Rebuild a cart from serialized lines:
    [{"product_id": 1, "quantity": 2, "unit_price_cents": 500, "discount_cents": 0}, ...]

    Products are re-read from the catalog so stock limits are current.
    """
    cart = Cart(price_override_policy=price_override_policy)
    for raw in lines or []:
        try:
            product_id = int(raw["product_id"])
            quantity = int(raw.get("quantity", 1))
        except (KeyError, TypeError, ValueError):
            raise ValidationError("Each cart line needs an integer product_id and quantity", details={"line": raw})
        try:
            price = raw.get("unit_price_cents")
            price = int(price) if price is not None else None
            discount = int(raw.get("discount_cents") or 0)
        except (TypeError, ValueError):
            raise ValidationError("unit_price_cents and discount_cents must be integers", details={"line": raw})

        product = catalog_service.get_product(product_id)
        line = cart.add(product, quantity)
        if price is not None:
            cart.set_unit_price(line.line_id, price)
        if discount:
            cart.set_line_discount(line.line_id, discount)
    return cart
