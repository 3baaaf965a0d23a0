# Overview: Service-layer operations for checkout; validates orders against the catalog and writes order, details and payment.

"""
Order & Payment Creation Service

WHY: An order is only accepted when every line matches the catalog as it
was read moments ago, and the client's declared total matches the sum of
its lines. The payment record is created alongside the order and decides
how the order gets settled.

WRITE ORDER (fixed):
1. orders (pending)
2. order_details, in batches
3. payments (completed for cash or zero total, else pending)
4. orders -> completed, only when the payment was completed in step 3

Each step is a single statement. The sequence stays correct when the
store commits statements independently: a crash between 3 and 4 leaves
an order pending behind a completed payment, which reconciliation
resolves by transaction_id. No other partial state is reachable.
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app
from sqlalchemy import insert, update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Order, OrderDetail, Payment
from ..models.orders import (
    ORDER_STATUS_COMPLETED,
    ORDER_STATUS_PENDING,
    PAYMENT_METHOD_CASH,
    PAYMENT_STATUS_COMPLETED,
    PAYMENT_STATUS_PENDING,
    VALID_PAYMENT_METHODS,
)
from orderpay.time_utils import utcnow
from . import catalog_service
from .catalog_service import CatalogSnapshot, ItemSource, chunked
from .concurrency import apply_guarded_update, run_with_retry
from .ledger_service import new_transaction_id


class OrderError(Exception):
    """Raised for order operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class UnknownProductError(OrderError):
    """A line's (product id, price) pair is not in the catalog snapshot."""
    pass


class TotalMismatchError(OrderError):
    """The declared total differs from the sum of the lines."""
    pass


@dataclass(frozen=True)
class OrderLine:
    product_id: str
    name: str
    price: int
    quantity: int


@dataclass(frozen=True)
class CheckoutResult:
    order_id: int
    transaction_id: str
    amount: int
    method: str
    status: str
    pay_url: str | None = None
    replayed: bool = False


def build_pay_url(transaction_id: str) -> str:
    """Hosted payment page for a pending prepaid payment."""
    base = current_app.config.get("CONSUMER_SITE_BASE_URL", "").rstrip("/")
    return f"{base}/pay?txnId={transaction_id}"


def verify_lines(lines: list[OrderLine], snapshot: CatalogSnapshot) -> int:
    """
    Check every line against the snapshot and return the computed total.

    Raises:
        OrderError: If the order is empty or lists a product twice
        UnknownProductError: If a (product_id, price) pair is not in the snapshot
    """
    if not lines:
        raise OrderError("Order must contain at least one line")

    seen: set[str] = set()
    total = 0
    for line in lines:
        if line.product_id in seen:
            raise OrderError(f"Product {line.product_id} listed more than once")
        seen.add(line.product_id)

        if line.quantity <= 0:
            raise OrderError(f"Quantity for {line.product_id} must be positive")

        if snapshot.find(line.product_id, line.price) is None:
            raise UnknownProductError(
                "Unknown product",
                details={"product_id": line.product_id, "price": line.price},
            )
        total += line.price * line.quantity

    return total


def _result_for(payment: Payment, *, replayed: bool = False) -> CheckoutResult:
    return CheckoutResult(
        order_id=payment.order_id,
        transaction_id=payment.transaction_id,
        amount=payment.amount,
        method=payment.method,
        status=payment.status,
        pay_url=build_pay_url(payment.transaction_id) if payment.status == PAYMENT_STATUS_PENDING else None,
        replayed=replayed,
    )


def _find_payment(transaction_id: str) -> Payment | None:
    return db.session.query(Payment).filter_by(transaction_id=transaction_id).first()


def create_order(
    lines: list[OrderLine],
    declared_total: int,
    payment_method: str,
    *,
    transaction_id: str | None = None,
    source: ItemSource | None = None,
) -> CheckoutResult:
    """
    Validate an order against a fresh catalog read and persist it with its payment.

    Args:
        lines: Requested lines (client-declared product id, name, price, quantity)
        declared_total: Total the client computed
        payment_method: cash or prepaid
        transaction_id: Optional client idempotency key; a known key replays
            the stored result instead of creating a second order
        source: Item source override (defaults to the configured client)

    Returns:
        CheckoutResult; pay_url is set only for pending payments

    Raises:
        OrderError: Invalid method or malformed lines
        UnknownProductError: Line not in the catalog at this price
        TotalMismatchError: declared_total != sum of lines
        UpstreamUnavailableError: Catalog fetch failed (nothing written)
    """
    if payment_method not in VALID_PAYMENT_METHODS:
        raise OrderError(f"Invalid payment method: {payment_method}. Must be one of {list(VALID_PAYMENT_METHODS)}")

    if transaction_id:
        existing = _find_payment(transaction_id)
        if existing is not None:
            current_app.logger.info("Order replayed for transaction %s", transaction_id)
            return _result_for(existing, replayed=True)

    snapshot = catalog_service.sync_catalog(source)

    try:
        computed_total = verify_lines(lines, snapshot)
    except UnknownProductError as e:
        current_app.logger.warning("Order rejected, unknown product: %s", e.details)
        raise

    if computed_total != declared_total:
        current_app.logger.warning(
            "Order rejected, total mismatch: declared=%s computed=%s", declared_total, computed_total
        )
        raise TotalMismatchError(
            "Invalid totalAmount",
            details={"declared": declared_total, "computed": computed_total},
        )

    transaction_id = transaction_id or new_transaction_id()
    settled_now = payment_method == PAYMENT_METHOD_CASH or declared_total == 0
    names = {item.id: item.name for item in snapshot.items}

    def _op() -> Payment:
        order = Order(total_amount=declared_total, status=ORDER_STATUS_PENDING)
        db.session.add(order)
        db.session.flush()  # Get order ID

        detail_rows = [
            {
                "order_id": order.id,
                "product_id": line.product_id,
                "name": names[line.product_id],
                "price": line.price,
                "quantity": line.quantity,
            }
            for line in lines
        ]
        for batch in chunked(detail_rows, current_app.config.get("UPSERT_BATCH_SIZE", 10)):
            db.session.execute(insert(OrderDetail).values(batch))

        payment = Payment(
            order_id=order.id,
            transaction_id=transaction_id,
            amount=declared_total,
            method=payment_method,
            status=PAYMENT_STATUS_COMPLETED if settled_now else PAYMENT_STATUS_PENDING,
            paid_at=utcnow() if settled_now else None,
        )
        db.session.add(payment)
        db.session.flush()

        if settled_now:
            apply_guarded_update(
                update(Order)
                .where(Order.id == order.id, Order.status == ORDER_STATUS_PENDING)
                .values(status=ORDER_STATUS_COMPLETED)
            )

        db.session.commit()
        return payment

    try:
        payment = run_with_retry(_op)
    except IntegrityError:
        # Same client key submitted concurrently; the other request created the order
        db.session.rollback()
        existing = _find_payment(transaction_id)
        if existing is None:
            raise
        current_app.logger.info("Order replayed for transaction %s after conflict", transaction_id)
        return _result_for(existing, replayed=True)

    current_app.logger.info(
        "Order %s created: transaction=%s amount=%s method=%s status=%s",
        payment.order_id, payment.transaction_id, payment.amount, payment.method, payment.status,
    )
    return _result_for(payment)

