# Overview: Request decorators binding the caller's operator identity.

from functools import wraps
from flask import request, jsonify, g, current_app

from .services.errors import NotFoundError, ValidationError, VoidNotPermittedError


OPERATOR_HEADER = "X-Operator-Id"
ROLE_HEADER = "X-Operator-Role"


def require_operator(f):
    """
    Require an authenticated operator.

    Login and sessions are handled by the identity provider in front of
    this service, which forwards the operator as request headers. Sets:
    - g.operator_id: the operator's id
    - g.operator_role: "admin" or "cashier" (defaults to cashier)
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        operator_id = (request.headers.get(OPERATOR_HEADER) or "").strip()
        if not operator_id:
            return jsonify({"error": "Authentication required"}), 401

        g.operator_id = operator_id
        g.operator_role = (request.headers.get(ROLE_HEADER) or "cashier").strip().lower()
        return f(*args, **kwargs)

    return decorated_function


def require_role(role: str):
    """
    Require a specific operator role. Must be applied after @require_operator.

    Returns 403 if the operator's role does not match.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if getattr(g, "operator_role", None) != role:
                return jsonify({"error": "Permission denied", "required_role": role}), 403
            return f(*args, **kwargs)
        return decorated_function
    return decorator


def handle_pos_errors(action: str):
    """
    Map service errors to JSON responses.

    ValidationError -> 400, NotFoundError -> 404, VoidNotPermittedError -> 403.
    Anything else is logged and returned as 500.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            try:
                return f(*args, **kwargs)
            except ValidationError as e:
                return jsonify({"error": str(e), "details": e.details}), 400
            except NotFoundError as e:
                return jsonify({"error": str(e), "details": e.details}), 404
            except VoidNotPermittedError as e:
                return jsonify({"error": str(e), "details": e.details}), 403
            except Exception:
                current_app.logger.exception(f"Failed to {action}")
                return jsonify({"error": "Internal server error"}), 500
        return decorated_function
    return decorator
