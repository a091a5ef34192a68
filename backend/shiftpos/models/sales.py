from __future__ import annotations

from ..extensions import db
from shiftpos.time_utils import to_utc_z


PAYMENT_METHODS = ("cash", "card", "mobile_money")

# Settlement progress, persisted so a half-finished checkout can be resumed
STATE_CREATED = "CREATED"
STATE_ITEMS_WRITTEN = "ITEMS_WRITTEN"
STATE_STOCK_ADJUSTED = "STOCK_ADJUSTED"
STATE_SHIFT_UPDATED = "SHIFT_UPDATED"
STATE_DONE = "DONE"
STATE_NEEDS_RECONCILIATION = "NEEDS_RECONCILIATION"


class Sale(db.Model):
    """
    Settled sale.

    Created at checkout before its items and side effects. settlement_state
    records how far checkout got; only DONE sales have had every effect
    applied. Voiding deletes the sale together with its items.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_shift_method", "shift_id", "payment_method"),
        db.Index("ix_sales_state_created", "settlement_state", "sale_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_date = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    # Amounts in cents; total_cents is net (post-tax, post-discount)
    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)
    # Cost of goods sold: sum of unit_cost_cents * quantity over the items
    cost_cents = db.Column(db.Integer, nullable=False, default=0)

    payment_method = db.Column(db.String(16), nullable=False)
    operator_id = db.Column(db.String(64), nullable=False, index=True)
    shift_id = db.Column(db.Integer, db.ForeignKey("shifts.id"), nullable=False, index=True)

    settlement_state = db.Column(db.String(32), nullable=False, default=STATE_CREATED, index=True)
    # Last state reached before being flagged, so reconciliation resumes there
    resume_state = db.Column(db.String(32), nullable=True)
    settlement_attempts = db.Column(db.Integer, nullable=False, default=0)
    last_error = db.Column(db.Text, nullable=True)
    # Cart lines captured at creation so item writing can be resumed
    pending_lines = db.Column(db.JSON, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    shift = db.relationship("Shift", backref=db.backref("sales", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def needs_reconciliation(self) -> bool:
        return self.settlement_state == STATE_NEEDS_RECONCILIATION

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "sale_date": to_utc_z(self.sale_date),
            "subtotal_cents": self.subtotal_cents,
            "tax_cents": self.tax_cents,
            "discount_cents": self.discount_cents,
            "total_cents": self.total_cents,
            "cost_cents": self.cost_cents,
            "payment_method": self.payment_method,
            "operator_id": self.operator_id,
            "shift_id": self.shift_id,
            "settlement_state": self.settlement_state,
            "needs_reconciliation": self.needs_reconciliation,
            "version_id": self.version_id,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class SaleItem(db.Model):
    """Line item on a sale. Immutable apart from the stock_applied marker."""
    __tablename__ = "sale_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    # Name at time of sale so receipts survive catalog deletes
    product_name = db.Column(db.String(255), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)  # price actually charged
    # Catalog cost at time of sale, for COGS
    unit_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    line_total_cents = db.Column(db.Integer, nullable=False)

    # Set in the same commit as the stock decrement for this line
    stock_applied = db.Column(db.Boolean, nullable=False, default=False)

    sale = db.relationship(
        "Sale",
        backref=db.backref("items", lazy=True, order_by="SaleItem.id"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "unit_cost_cents": self.unit_cost_cents,
            "line_total_cents": self.line_total_cents,
            "stock_applied": self.stock_applied,
        }
