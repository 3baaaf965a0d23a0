# Overview: Flask API routes for the consumer profile and balance history.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_identity
from ..services import ledger_service, status_service
from ..validation import ValidationError, coerce_int


profile_bp = Blueprint("profile", __name__, url_prefix="/api/profile")


@profile_bp.get("")
@require_identity
def get_profile_route():
    """Caller's account; created with balance 0 on first lookup."""
    try:
        user = status_service.get_or_create_user(g.uid)
        return jsonify(user.to_dict()), 200

    except Exception:
        current_app.logger.exception("Failed to load profile")
        return jsonify({"error": "Internal server error"}), 500


@profile_bp.get("/transactions")
@require_identity
def get_transactions_route():
    """
    Caller's balance history, newest first.

    Query params:
    - limit: Max rows (1-500, default 100)
    """
    try:
        limit = coerce_int("limit", request.args.get("limit", "100"), minimum=1, maximum=500)
        rows = ledger_service.get_history(g.uid, limit=limit)
        return jsonify({"transactions": [row.to_dict() for row in rows]}), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to load transaction history")
        return jsonify({"error": "Internal server error"}), 500
