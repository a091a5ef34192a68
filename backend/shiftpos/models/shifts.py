from __future__ import annotations

from ..extensions import db
from shiftpos.time_utils import to_utc_z

class Shift(db.Model):
    """
    Terminal session accumulating sales totals by payment channel.

    LIFECYCLE:
    - open (closed=False): accepts sales, totals move on every checkout
    - closed (closed=True): end_time frozen, never reopened

    The partial unique index keeps at most one open shift per terminal at
    the store level, so two processes racing to open one cannot both win.

    Running totals are a fast path only. close/void recompute them from the
    shift's surviving sales.
    """
    __tablename__ = "shifts"
    __table_args__ = (
        db.Index(
            "uq_shifts_terminal_open",
            "terminal_id",
            unique=True,
            sqlite_where=db.text("closed = 0"),
            postgresql_where=db.text("closed = false"),
        ),
        db.Index("ix_shifts_terminal_start", "terminal_id", "start_time"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    terminal_id = db.Column(db.String(64), nullable=False, index=True)
    operator_id = db.Column(db.String(64), nullable=False, index=True)

    start_time = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    end_time = db.Column(db.DateTime(timezone=True), nullable=True)

    # Totals (all amounts in cents)
    total_sales_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cash_cents = db.Column(db.Integer, nullable=False, default=0)
    total_card_cents = db.Column(db.Integer, nullable=False, default=0)
    total_mobile_money_cents = db.Column(db.Integer, nullable=False, default=0)
    # Expenses recorded against the shift and cost of goods sold in it
    total_expenses_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cogs_cents = db.Column(db.Integer, nullable=False, default=0)
    sales_count = db.Column(db.Integer, nullable=False, default=0)

    closed = db.Column(db.Boolean, nullable=False, default=False, index=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def totals(self) -> dict:
        return {
            "total_sales_cents": self.total_sales_cents,
            "total_cash_cents": self.total_cash_cents,
            "total_card_cents": self.total_card_cents,
            "total_mobile_money_cents": self.total_mobile_money_cents,
            "total_expenses_cents": self.total_expenses_cents,
            "total_cogs_cents": self.total_cogs_cents,
            "sales_count": self.sales_count,
        }

    @property
    def profit_cents(self) -> int:
        """Sales less expenses less cost of goods sold."""
        return (self.total_sales_cents or 0) - (self.total_expenses_cents or 0) - (self.total_cogs_cents or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "terminal_id": self.terminal_id,
            "operator_id": self.operator_id,
            "start_time": to_utc_z(self.start_time),
            "end_time": to_utc_z(self.end_time) if self.end_time else None,
            **self.totals(),
            "profit_cents": self.profit_cents,
            "closed": self.closed,
            "version_id": self.version_id,
        }
