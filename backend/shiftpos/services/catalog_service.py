"""
Catalog reader/writer used by checkout and void.

Catalog editing screens live elsewhere. This module covers the reads the
cart needs and the stock movements settlement and void perform.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..extensions import db
from ..models import Product
from .concurrency import lock_for_update, run_with_retry
from .errors import ProductNotFoundError, ValidationError


@dataclass(frozen=True)
class StockAdjustment:
    """Outcome of one stock movement."""
    product_id: int
    requested_delta: int
    applied_delta: int
    stock_before: int
    stock_after: int

    @property
    def shortfall(self) -> int:
        """Units that could not be taken because stock hit zero."""
        return self.applied_delta - self.requested_delta if self.requested_delta < 0 else 0


def create_product(
    name: str,
    price_cents: int,
    *,
    category: str | None = None,
    cost_cents: int = 0,
    stock_quantity: int = 0,
    reorder_level: int = 0,
) -> Product:
    if not name:
        raise ValidationError("Product name is required")
    if price_cents is None or price_cents < 0:
        raise ValidationError("Product price must be zero or positive")
    if stock_quantity < 0:
        raise ValidationError("Stock quantity cannot be negative")

    product = Product(
        name=name,
        category=category,
        price_cents=price_cents,
        cost_cents=cost_cents,
        stock_quantity=stock_quantity,
        reorder_level=reorder_level,
    )
    db.session.add(product)
    db.session.commit()
    return product


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if not product:
        raise ProductNotFoundError(f"Product {product_id} not found", details={"product_id": product_id})
    return product


def find_product(product_id: int) -> Product | None:
    return db.session.get(Product, product_id)


def adjust_stock(product_id: int, delta: int, *, commit: bool = True) -> StockAdjustment | None:
    """
    Move stock by delta.

    Decrements clamp at zero; the shortfall is reported on the result, not
    raised. Increments are applied in full. Returns None if the product no
    longer exists.
    """
    product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
    if product is None:
        return None

    before = product.stock_quantity
    after = max(0, before + delta)
    product.stock_quantity = after

    if commit:
        db.session.commit()
    else:
        db.session.flush()

    return StockAdjustment(
        product_id=product_id,
        requested_delta=delta,
        applied_delta=after - before,
        stock_before=before,
        stock_after=after,
    )


def set_stock(product_id: int, quantity: int) -> Product:
    """Absolute stock count (stock take, manual correction)."""
    if quantity < 0:
        raise ValidationError("Stock quantity cannot be negative")

    def _op():
        product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if not product:
            raise ProductNotFoundError(f"Product {product_id} not found", details={"product_id": product_id})
        product.stock_quantity = quantity
        db.session.commit()
        return product

    return run_with_retry(_op)


def low_stock_products() -> list[Product]:
    """Products at or below their reorder level, emptiest first."""
    return db.session.query(Product).filter(
        Product.stock_quantity <= Product.reorder_level
    ).order_by(Product.stock_quantity, Product.name).all()
