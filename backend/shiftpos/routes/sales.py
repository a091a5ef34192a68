# Overview: Flask API routes for checkout, void, and reconciliation.

# backend/shiftpos/routes/sales.py
"""
Sales API Routes

- POST /checkout: settle a serialized cart (201 settled, 202 flagged for reconciliation)
- POST /<id>/void: admin only, requires {"confirm": true}
- POST /<id>/reconcile, GET /reconciliation: admin follow-up on flagged sales
"""

from flask import Blueprint, request, jsonify, g

from ..services import checkout_service, void_service
from ..decorators import require_operator, require_role, handle_pos_errors


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("/checkout")
@require_operator
@handle_pos_errors("check out")
def checkout_route():
    """
    Request body:
    {
        "lines": [{"product_id": 1, "quantity": 2, "unit_price_cents": 500}],
        "payment_method": "cash",
        "discount": {"type": "percent", "value": 10}  (optional)
    }
    """
    data = request.get_json(silent=True) or {}
    result = checkout_service.checkout(
        data.get("lines") or [],
        data.get("payment_method"),
        g.operator_id,
        discount=data.get("discount"),
        terminal_id=data.get("terminal_id"),
    )
    status_code = 202 if result.needs_reconciliation else 201
    return jsonify(result.to_dict()), status_code


@sales_bp.get("/<int:sale_id>")
@require_operator
@handle_pos_errors("load sale")
def get_sale_route(sale_id: int):
    sale = checkout_service.get_sale(sale_id)
    return jsonify({"sale": sale.to_dict(include_items=True)}), 200


@sales_bp.post("/<int:sale_id>/void")
@require_operator
@require_role("admin")
@handle_pos_errors("void sale")
def void_sale_route(sale_id: int):
    """
    Void a sale. Irreversible, so the client must send confirm=true.

    Request body: {"confirm": true, "reason": "Wrong item"}
    """
    data = request.get_json(silent=True) or {}
    if data.get("confirm") is not True:
        return jsonify({"error": "Void must be confirmed", "details": {"confirm": True}}), 400

    result = void_service.void_sale(sale_id, operator_id=g.operator_id, reason=data.get("reason"))
    return jsonify(result.to_dict()), 200


@sales_bp.post("/<int:sale_id>/reconcile")
@require_operator
@require_role("admin")
@handle_pos_errors("reconcile sale")
def reconcile_sale_route(sale_id: int):
    result = checkout_service.reconcile_sale(sale_id)
    status_code = 202 if result.needs_reconciliation else 200
    return jsonify(result.to_dict()), status_code


@sales_bp.get("/reconciliation")
@require_operator
@require_role("admin")
@handle_pos_errors("list sales needing reconciliation")
def pending_reconciliation_route():
    sales = checkout_service.list_needing_reconciliation()
    return jsonify({"sales": [s.to_dict(include_items=True) for s in sales]}), 200
