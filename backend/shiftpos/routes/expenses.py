# Overview: Flask API routes for shift expenses.

# backend/shiftpos/routes/expenses.py
"""
Expense API Routes

- POST /: record an expense on the terminal's open shift (400 with no open shift)
- GET /: list expenses, optionally for one shift
- DELETE /<id>: admin only; the shift's totals are rebuilt
"""

from flask import Blueprint, request, jsonify, g

from ..services import expense_service
from ..decorators import require_operator, require_role, handle_pos_errors


expenses_bp = Blueprint("expenses", __name__, url_prefix="/api/expenses")


@expenses_bp.post("")
@expenses_bp.post("/")
@require_operator
@handle_pos_errors("record expense")
def record_expense_route():
    """
    Request body:
    {
        "amount_cents": 1500,
        "category": "supplies",
        "description": "Till rolls",   (optional)
        "expense_date": "2026-10-19"   (optional, defaults to today)
    }
    """
    data = request.get_json(silent=True) or {}
    expense = expense_service.record_expense(
        data.get("amount_cents"),
        data.get("category"),
        g.operator_id,
        description=data.get("description"),
        expense_date=data.get("expense_date"),
        terminal_id=data.get("terminal_id"),
    )
    return jsonify({"expense": expense.to_dict()}), 201


@expenses_bp.get("")
@expenses_bp.get("/")
@require_operator
@handle_pos_errors("list expenses")
def list_expenses_route():
    shift_id = request.args.get("shift_id", type=int)
    limit = request.args.get("limit", default=200, type=int)
    expenses = expense_service.list_expenses(shift_id=shift_id, limit=max(1, min(limit, 500)))
    return jsonify({"expenses": [e.to_dict() for e in expenses]}), 200


@expenses_bp.delete("/<int:expense_id>")
@require_operator
@require_role("admin")
@handle_pos_errors("delete expense")
def delete_expense_route(expense_id: int):
    deleted = expense_service.delete_expense(expense_id, operator_id=g.operator_id)
    return jsonify({"deleted_expense": deleted}), 200
