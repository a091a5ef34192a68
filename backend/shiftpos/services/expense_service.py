"""
Expenses: money paid out of the till during a shift.

An expense is always booked against the terminal's open shift; with no
open shift it is refused rather than opening one. Recording bumps the
shift's running expense total. Deleting rebuilds the shift totals from the
rows that remain, the same way a void does for sales.

Profit for a shift is sales less expenses less cost of goods sold.
"""

from __future__ import annotations

import logging
from datetime import date

from ..extensions import db
from ..models import Expense
from shiftpos.time_utils import business_date
from .audit_service import record_event
from .concurrency import run_with_retry, shift_lock
from .errors import ExpenseNotFoundError, NoActiveShiftError, ValidationError
from .shift_service import ShiftManager

logger = logging.getLogger(__name__)


def _parse_amount(amount_cents) -> int:
    if isinstance(amount_cents, bool):
        raise ValidationError("amount_cents must be an integer", details={"amount_cents": amount_cents})
    try:
        amount = int(amount_cents)
    except (TypeError, ValueError):
        raise ValidationError("amount_cents must be an integer", details={"amount_cents": amount_cents})
    if amount <= 0:
        raise ValidationError("Expense amount must be positive", details={"amount_cents": amount})
    return amount


def _parse_date(value, default: date) -> date:
    if value is None or value == "":
        return default
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise ValidationError("expense_date must be YYYY-MM-DD", details={"expense_date": value})


def record_expense(
    amount_cents,
    category: str,
    operator_id: str,
    *,
    description: str | None = None,
    expense_date=None,
    terminal_id: str | None = None,
) -> Expense:
    if not operator_id:
        raise ValidationError("operator_id is required")
    amount = _parse_amount(amount_cents)
    category = (category or "").strip()
    if not category:
        raise ValidationError("category is required")

    manager = ShiftManager(terminal_id)
    shift = manager.get_open_shift()
    if shift is None:
        raise NoActiveShiftError(
            "No active shift. Open a shift before recording expenses.",
            details={"terminal_id": manager.terminal_id},
        )
    spent_on = _parse_date(expense_date, business_date(manager.clock(), manager.timezone))

    def _op():
        db.session.refresh(shift)
        if shift.closed:
            raise NoActiveShiftError(
                f"Shift {shift.id} closed before the expense was recorded",
                details={"shift_id": shift.id},
            )
        expense = Expense(
            shift_id=shift.id,
            amount_cents=amount,
            category=category[:64],
            description=(description or "").strip()[:255] or None,
            expense_date=spent_on,
            operator_id=str(operator_id),
        )
        db.session.add(expense)
        db.session.flush()

        manager.apply_expense(shift.id, amount, commit=False)
        record_event(
            event_type="expense.recorded",
            shift_id=shift.id,
            operator_id=str(operator_id),
            note=category,
            payload={"expense_id": expense.id, "amount_cents": amount},
        )
        db.session.commit()
        return expense

    with shift_lock(shift.id):
        expense = run_with_retry(_op)

    logger.info("Recorded expense %s (%s cents, %s) on shift %s", expense.id, amount, category, shift.id)
    return expense


def get_expense(expense_id: int) -> Expense:
    expense = db.session.get(Expense, expense_id)
    if not expense:
        raise ExpenseNotFoundError(f"Expense {expense_id} not found", details={"expense_id": expense_id})
    return expense


def list_expenses(*, shift_id: int | None = None, limit: int = 200) -> list[Expense]:
    query = db.session.query(Expense)
    if shift_id is not None:
        query = query.filter_by(shift_id=shift_id)
    return query.order_by(Expense.expense_date.desc(), Expense.id.desc()).limit(limit).all()


def delete_expense(expense_id: int, operator_id: str | None = None, *, terminal_id: str | None = None) -> dict:
    """Delete an expense and rebuild its shift's totals. Returns the deleted row."""
    expense = get_expense(expense_id)
    shift_id = expense.shift_id
    manager = ShiftManager(terminal_id)

    def _op():
        expense = get_expense(expense_id)
        snapshot = expense.to_dict()
        db.session.delete(expense)
        db.session.flush()

        manager.recompute_from_sales(shift_id, commit=False)
        record_event(
            event_type="expense.deleted",
            shift_id=shift_id,
            operator_id=operator_id,
            payload=snapshot,
        )
        db.session.commit()
        return snapshot

    with shift_lock(shift_id):
        snapshot = run_with_retry(_op)

    logger.info("Deleted expense %s (%s cents) from shift %s", expense_id, snapshot["amount_cents"], shift_id)
    return snapshot
