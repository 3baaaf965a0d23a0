# Overview: Flask API routes for prepaid administration; balance charges and refunds.

"""
Prepaid Administration API Routes

SECURITY:
- Administrator API key (X-API-KEY matching ADMIN_API_KEY) required
- Every balance change goes through the ledger and leaves a history row
"""

from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_admin_api_key
from ..services import ledger_service, payment_service
from ..services.ledger_service import LedgerError, UserNotFoundError
from ..services.payment_service import PaymentNotFoundError, PaymentStateError
from ..time_utils import to_utc_z
from ..validation import ValidationError, parse_charge_request


admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


@admin_bp.put("/prepaid/charge")
@require_admin_api_key
def charge_route():
    """
    Credit a user's prepaid balance.

    Request body:
    {
        "uid": "firebase-uid",
        "amount": 1000,
        "transactionId": "..."  (optional; a repeated id is not applied twice)
    }

    Returns:
        200: {transactionId, userId, uid, amount, balance}
        400: Invalid input
        404: Unknown user
    """
    try:
        charge = parse_charge_request(request.get_json(silent=True))

        result = ledger_service.credit(
            charge.uid,
            charge.amount,
            transaction_id=charge.transaction_id,
        )
        if result.replayed:
            current_app.logger.info("Charge %s already applied for uid=%s", result.transaction_id, result.uid)
        else:
            current_app.logger.info(
                "Balance charged: uid=%s amount=%s balance=%s", result.uid, result.amount, result.balance
            )

        return jsonify({
            "transactionId": result.transaction_id,
            "userId": result.user_id,
            "uid": result.uid,
            "amount": result.amount,
            "balance": result.balance,
        }), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except UserNotFoundError:
        return jsonify({"error": "User not found"}), 404
    except LedgerError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to charge balance")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.post("/prepaid/refund/<transaction_id>")
@require_admin_api_key
def refund_route(transaction_id: str):
    """
    Refund a settled prepaid payment to its payer.

    Returns:
        200: {transactionId, userId, amount, balance, refundedAt}
        400: Payment not settled or already refunded
        404: Unknown prepaid payment
    """
    try:
        result = payment_service.refund_prepaid(transaction_id)
        return jsonify({
            "transactionId": result.transaction_id,
            "userId": result.user_id,
            "amount": result.amount,
            "balance": result.balance,
            "refundedAt": to_utc_z(result.refunded_at),
        }), 200

    except PaymentNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except PaymentStateError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to refund payment")
        return jsonify({"error": "Internal server error"}), 500
