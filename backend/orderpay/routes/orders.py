# Overview: Flask API routes for order checkout; parses input and returns JSON responses.

"""
Order Checkout API Routes

WHY: Registers submit an order with its declared total and payment method;
the server re-reads the catalog, verifies every line and persists the
order with its payment.

SECURITY:
- Shared client API key (X-API-KEY) required
- Prices and totals are never trusted; both are checked against the catalog
"""

from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_api_key
from ..services import order_service
from ..services.catalog_service import UpstreamUnavailableError
from ..services.order_service import OrderError
from ..validation import ValidationError, parse_order_request


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _checkout_response(result) -> dict:
    body = {
        "transactionId": result.transaction_id,
        "amount": result.amount,
        "method": result.method,
        "status": result.status,
    }
    if result.pay_url:
        body["payUrl"] = result.pay_url
    return body


@orders_bp.post("")
@require_api_key
def create_order_route():
    """
    Create an order and its payment.

    Request body:
    {
        "details": [{"productId": "4901234567890", "name": "Tea", "price": 500, "quantity": 2}],
        "totalAmount": 1000,
        "paymentMethod": "cash" | "prepaid",
        "transactionId": "..."  (optional idempotency key)
    }

    Returns:
        201: Order created; payUrl present for pending prepaid payments
        200: Known transactionId, stored result replayed
        400: Invalid input, unknown product or total mismatch
        401: Invalid API key
        502: Item API unavailable (nothing written)
    """
    try:
        order = parse_order_request(request.get_json(silent=True))

        result = order_service.create_order(
            order.lines,
            order.total_amount,
            order.payment_method,
            transaction_id=order.transaction_id,
        )
        return jsonify(_checkout_response(result)), 200 if result.replayed else 201

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except OrderError as e:
        body = {"error": str(e)}
        if e.details:
            body["details"] = e.details
        return jsonify(body), 400
    except UpstreamUnavailableError as e:
        current_app.logger.warning("Order aborted, item API unavailable: %s", e)
        return jsonify({"error": "Item API unavailable"}), 502
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500
