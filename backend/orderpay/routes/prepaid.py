# Overview: Flask API routes for the consumer pay page; shows and settles prepaid payments.

"""
Prepaid Pay Page API Routes

WHY: A prepaid order returns a pay URL. The customer opens it, sees the
amount, and settles it from their prepaid balance.

SECURITY:
- Consumer identity token (Authorization: Bearer) required
- Only prepaid payments are visible here; cash payments read as not found
"""

from flask import Blueprint, current_app, g, jsonify

from ..decorators import require_identity
from ..services import payment_service, status_service
from ..services.ledger_service import InsufficientBalanceError, UserNotFoundError
from ..services.payment_service import PaymentNotFoundError, PaymentStateError


prepaid_bp = Blueprint("prepaid", __name__, url_prefix="/api/prepaid")


@prepaid_bp.get("/pay/<transaction_id>")
@require_identity
def get_pay_route(transaction_id: str):
    """
    Returns:
        200: {transactionId, amount, status}
        404: No prepaid payment with this id
    """
    try:
        payment = status_service.get_prepaid_payment(transaction_id)
        return jsonify({
            "transactionId": payment.transaction_id,
            "amount": payment.amount,
            "status": payment.status,
        }), 200

    except PaymentNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to get prepaid payment")
        return jsonify({"error": "Internal server error"}), 500


@prepaid_bp.post("/pay/<transaction_id>")
@require_identity
def settle_pay_route(transaction_id: str):
    """
    Settle a pending prepaid payment from the caller's balance.

    Returns:
        200: {transactionId, amount, method, status}
        400: Payment not pending, or insufficient balance
        401: No account for the caller
        404: No prepaid payment with this id
    """
    try:
        payment = payment_service.settle_prepaid(transaction_id, g.uid)
        return jsonify(payment.to_dict()), 200

    except PaymentNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except PaymentStateError as e:
        return jsonify({"error": str(e)}), 400
    except InsufficientBalanceError as e:
        current_app.logger.info("Settlement of %s refused: insufficient balance for uid=%s", transaction_id, e.uid)
        return jsonify({"error": str(e)}), 400
    except UserNotFoundError:
        return jsonify({"error": "User not found"}), 401
    except Exception:
        current_app.logger.exception("Failed to settle prepaid payment")
        return jsonify({"error": "Internal server error"}), 500
