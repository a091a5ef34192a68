# Overview: Read-only catalog endpoints used by the checkout screen.

from flask import Blueprint, jsonify

from ..services import catalog_service
from ..decorators import require_operator, handle_pos_errors


catalog_bp = Blueprint("catalog", __name__, url_prefix="/api/catalog")


@catalog_bp.get("/products/<int:product_id>")
@require_operator
@handle_pos_errors("load product")
def get_product_route(product_id: int):
    return jsonify({"product": catalog_service.get_product(product_id).to_dict()}), 200


@catalog_bp.get("/low-stock")
@require_operator
@handle_pos_errors("load low-stock report")
def low_stock_route():
    products = catalog_service.low_stock_products()
    return jsonify({"products": [p.to_dict() for p in products]}), 200
