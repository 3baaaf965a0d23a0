# Overview: Flask API routes for payment status polling.

from flask import Blueprint, current_app, jsonify

from ..decorators import require_api_key
from ..services import status_service
from ..services.payment_service import PaymentNotFoundError


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


@payments_bp.get("/<transaction_id>")
@require_api_key
def get_payment_route(transaction_id: str):
    """
    Payment status by transaction id (any method).

    Returns:
        200: {transactionId, amount, method, status}
        404: Unknown transaction id
    """
    try:
        payment = status_service.get_payment(transaction_id)
        return jsonify(payment.to_dict()), 200

    except PaymentNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to get payment")
        return jsonify({"error": "Internal server error"}), 500
