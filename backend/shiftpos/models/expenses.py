from __future__ import annotations

from ..extensions import db
from shiftpos.time_utils import to_utc_z


class Expense(db.Model):
    """
    Money paid out of the till during a shift (supplies, transport, ...).

    Recorded only against the terminal's open shift. Deleting one rebuilds
    the shift's expense total from the rows that remain.
    """
    __tablename__ = "expenses"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_expenses_amount_positive"),
        db.Index("ix_expenses_shift_date", "shift_id", "expense_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shift_id = db.Column(db.Integer, db.ForeignKey("shifts.id"), nullable=False, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    category = db.Column(db.String(64), nullable=False, index=True)
    description = db.Column(db.String(255), nullable=True)
    # Business date the money went out; may differ from when it was keyed in
    expense_date = db.Column(db.Date, nullable=False)

    operator_id = db.Column(db.String(64), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    shift = db.relationship("Shift", backref=db.backref("expenses", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shift_id": self.shift_id,
            "amount_cents": self.amount_cents,
            "category": self.category,
            "description": self.description,
            "expense_date": self.expense_date.isoformat() if self.expense_date else None,
            "operator_id": self.operator_id,
            "created_at": to_utc_z(self.created_at),
        }
