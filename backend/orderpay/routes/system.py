# backend/orderpay/routes/system.py
"""
System health endpoint.

Reports database connectivity and row counts for deployment debugging.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Payment, Product, User
from ..models.orders import PAYMENT_STATUS_PENDING
from orderpay.time_utils import utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        product_count = db.session.query(Product).count()
        user_count = db.session.query(User).count()
        pending_payments = db.session.query(Payment).filter_by(status=PAYMENT_STATUS_PENDING).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "products": product_count,
                "users": user_count,
                "pending_payments": pending_payments,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        db.session.rollback()
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: Database reachable
    - 503: Database unhealthy
    """
    database_health = check_database_health()
    healthy = database_health["status"] == "healthy"

    response = {
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": utcnow().isoformat() + "Z",
        "checks": {
            "database": database_health,
        }
    }

    return response, 200 if healthy else 503
