# Overview: Flask API routes for shift operations; parses input and returns JSON responses.

# backend/shiftpos/routes/shifts.py
"""
Shift API Routes

- Current shift lookup and explicit open (returns the open shift if any)
- Close (totals recomputed from the shift's sales; safe to repeat)
- History and per-shift summary
"""

from flask import Blueprint, request, jsonify, g

from ..services import shift_service
from ..services.shift_service import ShiftManager
from ..decorators import require_operator, handle_pos_errors


shifts_bp = Blueprint("shifts", __name__, url_prefix="/api/shifts")


def _manager() -> ShiftManager:
    return ShiftManager(request.args.get("terminal_id") or None)


@shifts_bp.get("/current")
@require_operator
@handle_pos_errors("load current shift")
def current_shift_route():
    shift = _manager().get_open_shift()
    return jsonify({"shift": shift.to_dict() if shift else None}), 200


@shifts_bp.post("/open")
@require_operator
@handle_pos_errors("open shift")
def open_shift_route():
    """
    Open a shift for the calling operator, or return the one already open.

    An open shift from an earlier business date is rotated first.
    """
    shift = _manager().ensure_open_shift(g.operator_id)
    return jsonify({"shift": shift.to_dict()}), 200


@shifts_bp.post("/<int:shift_id>/close")
@require_operator
@handle_pos_errors("close shift")
def close_shift_route(shift_id: int):
    shift = _manager().close_shift(shift_id, operator_id=g.operator_id)
    return jsonify({"shift": shift.to_dict()}), 200


@shifts_bp.get("")
@shifts_bp.get("/")
@require_operator
@handle_pos_errors("list shifts")
def list_shifts_route():
    closed_arg = request.args.get("closed")
    closed = None
    if closed_arg is not None:
        closed = closed_arg.strip().lower() in {"1", "true", "yes"}
    limit = request.args.get("limit", default=50, type=int)

    shifts = shift_service.list_shifts(
        terminal_id=request.args.get("terminal_id") or None,
        closed=closed,
        limit=max(1, min(limit, 500)),
    )
    return jsonify({"shifts": [s.to_dict() for s in shifts]}), 200


@shifts_bp.get("/<int:shift_id>/summary")
@require_operator
@handle_pos_errors("load shift summary")
def shift_summary_route(shift_id: int):
    return jsonify(shift_service.shift_summary(shift_id)), 200
