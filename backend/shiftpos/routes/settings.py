# Overview: Store settings endpoints (tax rate, rotation and void policies).

from flask import Blueprint, request, jsonify, g

from ..services import settings_service
from ..decorators import require_operator, require_role, handle_pos_errors


settings_bp = Blueprint("settings", __name__, url_prefix="/api/settings")


def _serialize(values: dict) -> dict:
    return {key: str(value) if not isinstance(value, (bool, int, str)) else value for key, value in values.items()}


@settings_bp.get("")
@settings_bp.get("/")
@require_operator
@handle_pos_errors("load settings")
def get_settings_route():
    return jsonify({"settings": _serialize(settings_service.all_settings())}), 200


@settings_bp.put("")
@settings_bp.put("/")
@require_operator
@require_role("admin")
@handle_pos_errors("update settings")
def update_settings_route():
    """Request body: {"tax_rate_percent": "16", "daily_shift_rotation": false}"""
    data = request.get_json(silent=True) or {}
    values = settings_service.set_settings(data, updated_by=g.operator_id)
    return jsonify({"settings": _serialize(values)}), 200
