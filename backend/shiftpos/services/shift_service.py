"""
Shift Management Service

One open shift per terminal. A shift opens on demand (first checkout or an
explicit open), may be rotated when it was started on an earlier business
date, and is closed by an operator. Closed shifts are never reopened.

TOTALS:
- apply_sale() and apply_expense() bump the running totals (fast path)
- recompute_from_sales() rebuilds them from the shift's surviving sales
  and expenses; cost of goods sold comes from each sale's cost_cents
- close_shift() always recomputes, so closing twice gives the same numbers

Both paths go through ShiftTotals.add_sale(), so the bucketing rule exists
in exactly one place.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterable

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Expense, Sale, Shift
from shiftpos.time_utils import business_date, utcnow
from . import settings_service
from .audit_service import record_event
from .concurrency import lock_for_update, run_with_retry, shift_lock
from .errors import ShiftClosedError, ShiftNotFoundError, ValidationError

logger = logging.getLogger(__name__)


# payment method -> shift bucket column
PAYMENT_BUCKETS = {
    "cash": "total_cash_cents",
    "card": "total_card_cents",
    "mobile_money": "total_mobile_money_cents",
}


@dataclass
class ShiftTotals:
    total_sales_cents: int = 0
    total_cash_cents: int = 0
    total_card_cents: int = 0
    total_mobile_money_cents: int = 0
    total_expenses_cents: int = 0
    total_cogs_cents: int = 0
    sales_count: int = 0

    def add_sale(self, amount_cents: int, payment_method: str, cost_cents: int = 0) -> None:
        bucket = PAYMENT_BUCKETS.get(payment_method)
        if bucket is None:
            raise ValidationError(f"Unknown payment method '{payment_method}'")
        self.total_sales_cents += amount_cents
        setattr(self, bucket, getattr(self, bucket) + amount_cents)
        self.total_cogs_cents += cost_cents or 0
        self.sales_count += 1

    def add_expense(self, amount_cents: int) -> None:
        self.total_expenses_cents += amount_cents

    @property
    def profit_cents(self) -> int:
        return self.total_sales_cents - self.total_expenses_cents - self.total_cogs_cents

    @classmethod
    def from_shift(cls, shift: Shift) -> "ShiftTotals":
        return cls(
            total_sales_cents=shift.total_sales_cents or 0,
            total_cash_cents=shift.total_cash_cents or 0,
            total_card_cents=shift.total_card_cents or 0,
            total_mobile_money_cents=shift.total_mobile_money_cents or 0,
            total_expenses_cents=shift.total_expenses_cents or 0,
            total_cogs_cents=shift.total_cogs_cents or 0,
            sales_count=shift.sales_count or 0,
        )

    def apply_to(self, shift: Shift) -> None:
        shift.total_sales_cents = self.total_sales_cents
        shift.total_cash_cents = self.total_cash_cents
        shift.total_card_cents = self.total_card_cents
        shift.total_mobile_money_cents = self.total_mobile_money_cents
        shift.total_expenses_cents = self.total_expenses_cents
        shift.total_cogs_cents = self.total_cogs_cents
        shift.sales_count = self.sales_count


def aggregate_sales(sales: Iterable[Sale], expenses: Iterable[Expense] = ()) -> ShiftTotals:
    totals = ShiftTotals()
    for sale in sales:
        totals.add_sale(sale.total_cents, sale.payment_method, sale.cost_cents)
    for expense in expenses:
        totals.add_expense(expense.amount_cents)
    return totals


class ShiftManager:
    """
    Owns the open shift of one terminal.

    Hold one instance per terminal (or per test); nothing here is global.
    Rotation and timezone default to the store settings when not given.
    """

    def __init__(
        self,
        terminal_id: str | None = None,
        *,
        daily_rotation: bool | None = None,
        timezone: str | None = None,
        clock: Callable = utcnow,
    ):
        self.terminal_id = terminal_id or current_app.config.get("TERMINAL_ID", "main")
        self._daily_rotation = daily_rotation
        self._timezone = timezone
        self.clock = clock

    @property
    def daily_rotation(self) -> bool:
        if self._daily_rotation is not None:
            return self._daily_rotation
        return settings_service.get_setting("daily_shift_rotation")

    @property
    def timezone(self) -> str:
        return self._timezone or current_app.config.get("BUSINESS_TIMEZONE", "UTC")

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def get_open_shift(self) -> Shift | None:
        return db.session.query(Shift).filter_by(
            terminal_id=self.terminal_id,
            closed=False,
        ).first()

    def _started_before_today(self, shift: Shift) -> bool:
        now = self.clock()
        return business_date(shift.start_time, self.timezone) != business_date(now, self.timezone)

    def _open(self, operator_id: str) -> Shift:
        shift = Shift(
            terminal_id=self.terminal_id,
            operator_id=str(operator_id),
            start_time=self.clock(),
            closed=False,
        )
        ShiftTotals().apply_to(shift)
        db.session.add(shift)
        db.session.flush()

        record_event(
            event_type="shift.opened",
            shift_id=shift.id,
            operator_id=str(operator_id),
            occurred_at=shift.start_time,
            note=f"Shift opened on terminal {self.terminal_id}",
        )
        db.session.commit()
        logger.info("Opened shift %s on terminal %s for operator %s", shift.id, self.terminal_id, operator_id)
        return shift

    def ensure_open_shift(self, operator_id: str) -> Shift:
        """
        Return the terminal's open shift, opening one if needed.

        An open shift started on an earlier business date is closed first
        (when daily rotation is on) and a fresh one takes its place.
        """
        if not operator_id:
            raise ValidationError("operator_id is required")

        def _op():
            shift = self.get_open_shift()
            if shift is not None and self.daily_rotation and self._started_before_today(shift):
                self._rotate(shift.id, str(operator_id))
                shift = None
            if shift is not None:
                return shift
            return self._open(operator_id)

        try:
            return run_with_retry(_op)
        except IntegrityError:
            # Lost the race to another process opening a shift on this terminal
            db.session.rollback()
            shift = self.get_open_shift()
            if shift is None:
                raise
            return shift

    open_or_get_shift = ensure_open_shift

    def _rotate(self, shift_id: int, operator_id: str) -> None:
        # Same lock settlement and void take, so no sale lands mid-close
        with shift_lock(shift_id):
            shift = self._lock(shift_id)
            if shift.closed:
                return
            logger.info("Rotating shift %s opened on an earlier business date", shift.id)
            self._close_locked(shift, event_type="shift.auto_closed", operator_id=operator_id)
            db.session.commit()

    def _close_locked(self, shift: Shift, *, event_type: str, operator_id: str | None) -> None:
        totals = self._recompute(shift)
        if shift.closed:
            return
        shift.closed = True
        shift.end_time = self.clock()
        record_event(
            event_type=event_type,
            shift_id=shift.id,
            operator_id=operator_id or shift.operator_id,
            occurred_at=shift.end_time,
            note=f"Shift closed with {totals.sales_count} sales",
            payload={
                "total_sales_cents": totals.total_sales_cents,
                "total_cash_cents": totals.total_cash_cents,
                "total_card_cents": totals.total_card_cents,
                "total_mobile_money_cents": totals.total_mobile_money_cents,
                "total_expenses_cents": totals.total_expenses_cents,
                "total_cogs_cents": totals.total_cogs_cents,
                "profit_cents": totals.profit_cents,
            },
        )

    def close_shift(self, shift_id: int, operator_id: str | None = None) -> Shift:
        """
        Close a shift with totals rebuilt from its surviving sales.

        Closing an already-closed shift recomputes the same totals and keeps
        the original end time.
        """
        def _op():
            shift = self._lock(shift_id)
            self._close_locked(shift, event_type="shift.closed", operator_id=operator_id)
            db.session.commit()
            return shift

        with shift_lock(shift_id):
            shift = run_with_retry(_op)
        logger.info("Closed shift %s: total_sales_cents=%s", shift.id, shift.total_sales_cents)
        return shift

    # =========================================================================
    # TOTALS
    # =========================================================================

    def _lock(self, shift_id: int) -> Shift:
        shift = lock_for_update(db.session.query(Shift).filter_by(id=shift_id)).first()
        if not shift:
            raise ShiftNotFoundError(f"Shift {shift_id} not found", details={"shift_id": shift_id})
        return shift

    def _recompute(self, shift: Shift) -> ShiftTotals:
        sales = db.session.query(Sale).filter_by(shift_id=shift.id).all()
        expenses = db.session.query(Expense).filter_by(shift_id=shift.id).all()
        totals = aggregate_sales(sales, expenses)
        drift = shift.total_sales_cents - totals.total_sales_cents
        if drift:
            logger.warning("Shift %s running total drifted by %s cents; corrected", shift.id, drift)
        totals.apply_to(shift)
        return totals

    def apply_sale(self, shift_id: int, sale: Sale, *, commit: bool = True) -> Shift:
        """Fast-path increment of the open shift's totals by one sale."""
        shift = self._lock(shift_id)
        if shift.closed:
            raise ShiftClosedError(f"Shift {shift_id} is closed", details={"shift_id": shift_id})

        totals = ShiftTotals.from_shift(shift)
        totals.add_sale(sale.total_cents, sale.payment_method, sale.cost_cents)
        totals.apply_to(shift)

        if commit:
            db.session.commit()
        else:
            db.session.flush()
        return shift

    def apply_expense(self, shift_id: int, amount_cents: int, *, commit: bool = True) -> Shift:
        """Fast-path increment of the open shift's expense total."""
        shift = self._lock(shift_id)
        if shift.closed:
            raise ShiftClosedError(f"Shift {shift_id} is closed", details={"shift_id": shift_id})

        totals = ShiftTotals.from_shift(shift)
        totals.add_expense(amount_cents)
        totals.apply_to(shift)

        if commit:
            db.session.commit()
        else:
            db.session.flush()
        return shift

    def recompute_from_sales(self, shift_id: int, *, commit: bool = True) -> Shift:
        """Authoritative totals from the shift's sales and expenses. Leaves the closed flag alone."""
        shift = self._lock(shift_id)
        self._recompute(shift)
        if commit:
            db.session.commit()
        else:
            db.session.flush()
        return shift


# =============================================================================
# REPORTING
# =============================================================================

def get_shift(shift_id: int) -> Shift:
    shift = db.session.get(Shift, shift_id)
    if not shift:
        raise ShiftNotFoundError(f"Shift {shift_id} not found", details={"shift_id": shift_id})
    return shift


def list_shifts(
    *,
    terminal_id: str | None = None,
    closed: bool | None = None,
    limit: int = 50,
) -> list[Shift]:
    query = db.session.query(Shift)
    if terminal_id:
        query = query.filter_by(terminal_id=terminal_id)
    if closed is not None:
        query = query.filter_by(closed=closed)
    return query.order_by(Shift.start_time.desc(), Shift.id.desc()).limit(limit).all()


def get_shift_sales(shift_id: int) -> list[Sale]:
    return db.session.query(Sale).filter_by(
        shift_id=shift_id
    ).order_by(Sale.sale_date.desc(), Sale.id.desc()).all()


def get_shift_expenses(shift_id: int) -> list[Expense]:
    return db.session.query(Expense).filter_by(
        shift_id=shift_id
    ).order_by(Expense.expense_date.desc(), Expense.id.desc()).all()


def shift_summary(shift_id: int, recent: int = 10) -> dict:
    """
    Shift totals as stored next to a fresh aggregation of its sales and
    expenses, with profit = sales - expenses - cost of goods sold.

    A non-zero drift means the running totals missed something; closing
    the shift (or voiding any sale in it) corrects them.
    """
    shift = get_shift(shift_id)
    sales = get_shift_sales(shift_id)
    expenses = get_shift_expenses(shift_id)
    computed = aggregate_sales(sales, expenses)

    return {
        "shift": shift.to_dict(),
        "computed_totals": {
            "total_sales_cents": computed.total_sales_cents,
            "total_cash_cents": computed.total_cash_cents,
            "total_card_cents": computed.total_card_cents,
            "total_mobile_money_cents": computed.total_mobile_money_cents,
            "total_expenses_cents": computed.total_expenses_cents,
            "total_cogs_cents": computed.total_cogs_cents,
            "profit_cents": computed.profit_cents,
            "sales_count": computed.sales_count,
        },
        "drift_cents": shift.total_sales_cents - computed.total_sales_cents,
        "needs_reconciliation_count": sum(1 for s in sales if s.needs_reconciliation),
        "recent_sales": [s.to_dict() for s in sales[:recent]],
        "expenses": [e.to_dict() for e in expenses],
    }


def open_or_get_shift(operator_id: str, *, terminal_id: str | None = None) -> Shift:
    return ShiftManager(terminal_id).ensure_open_shift(operator_id)


def close_shift(shift_id: int, operator_id: str | None = None) -> Shift:
    return ShiftManager().close_shift(shift_id, operator_id=operator_id)
