# Overview: Service-layer operations for payment; prepaid settlement and refund driven through the ledger.

"""
Prepaid Settlement Service

WHY: A prepaid payment is created pending at checkout and settled later by
the customer from their prepaid balance. Settlement and the balance debit
must happen together or not at all, and a payment must never be settled
(or debited) twice.

DESIGN PRINCIPLES:
- Claim first: pending -> completed is a conditional update; the request
  that changes the row owns the settlement, every other one gets a
  conflict
- Debit second: the ledger's conditional debit; on insufficient balance
  the claim is released (completed -> pending) before returning
- The order follows its payment (pending -> completed) in the same unit
- Refunds are claimed on refunded_at IS NULL and credit the payer
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from flask import current_app
from sqlalchemy import update

from ..extensions import db
from ..models import Order, Payment, User
from ..models.accounts import TRANSACTION_TYPE_PAYMENT, TRANSACTION_TYPE_REFUND
from ..models.orders import (
    ORDER_STATUS_COMPLETED,
    ORDER_STATUS_PENDING,
    PAYMENT_METHOD_PREPAID,
    PAYMENT_STATUS_COMPLETED,
    PAYMENT_STATUS_PENDING,
)
from orderpay.time_utils import utcnow
from . import ledger_service
from .concurrency import apply_guarded_update, run_with_retry
from .ledger_service import InsufficientBalanceError, UserNotFoundError


class PaymentError(Exception):
    """Raised for payment operation errors."""
    pass


class PaymentNotFoundError(PaymentError):
    pass


class PaymentStateError(PaymentError):
    """Payment is not in the state the operation requires (e.g. already settled)."""
    pass


@dataclass(frozen=True)
class RefundResult:
    transaction_id: str
    user_id: int
    amount: int
    balance: int
    refunded_at: datetime


def _load_prepaid(transaction_id: str) -> Payment:
    payment = (
        db.session.query(Payment)
        .filter_by(transaction_id=transaction_id, method=PAYMENT_METHOD_PREPAID)
        .populate_existing()
        .first()
    )
    if not payment:
        raise PaymentNotFoundError("Payment not found")
    return payment


def _complete_order(order_id: int) -> None:
    apply_guarded_update(
        update(Order)
        .where(Order.id == order_id, Order.status == ORDER_STATUS_PENDING)
        .values(status=ORDER_STATUS_COMPLETED)
    )


def settle_prepaid(transaction_id: str, uid: str) -> Payment:
    """
    Settle a pending prepaid payment from the caller's balance.

    Args:
        transaction_id: Payment handle from the pay URL
        uid: External identity of the paying user

    Returns:
        The completed Payment

    Raises:
        PaymentNotFoundError: No prepaid payment with this transaction_id
        PaymentStateError: Payment is not pending (already settled, failed, or lost a race)
        UserNotFoundError: No account for uid
        InsufficientBalanceError: Balance < amount; payment stays pending, nothing recorded
    """
    def _op() -> Payment:
        payment = _load_prepaid(transaction_id)

        if payment.status != PAYMENT_STATUS_PENDING:
            raise PaymentStateError("Payment is not pending")

        user = db.session.query(User).filter_by(uid=uid).first()
        if not user:
            raise UserNotFoundError(f"User {uid} not found")

        claimed = apply_guarded_update(
            update(Payment)
            .where(Payment.id == payment.id, Payment.status == PAYMENT_STATUS_PENDING)
            .values(status=PAYMENT_STATUS_COMPLETED, paid_at=utcnow(), user_id=user.id)
        )
        if not claimed:
            db.session.rollback()
            raise PaymentStateError("Payment is not pending")

        try:
            result = ledger_service.debit(
                uid,
                payment.amount,
                transaction_id=transaction_id,
                transaction_type=TRANSACTION_TYPE_PAYMENT,
                commit=False,
            )
        except InsufficientBalanceError:
            apply_guarded_update(
                update(Payment)
                .where(
                    Payment.id == payment.id,
                    Payment.status == PAYMENT_STATUS_COMPLETED,
                    Payment.user_id == user.id,
                )
                .values(status=PAYMENT_STATUS_PENDING, paid_at=None, user_id=None)
            )
            db.session.commit()
            raise

        if result.replayed:
            current_app.logger.info("Payment %s was already debited; completing settlement", transaction_id)

        _complete_order(payment.order_id)
        db.session.commit()

        current_app.logger.info(
            "Payment %s settled: user=%s amount=%s balance=%s",
            transaction_id, user.id, payment.amount, result.balance,
        )
        return _load_prepaid(transaction_id)

    return run_with_retry(_op)


def refund_prepaid(transaction_id: str) -> RefundResult:
    """
    Refund a settled prepaid payment back to the payer's balance.

    The payment and its order stay completed; refunded_at marks the refund.

    Raises:
        PaymentNotFoundError: No prepaid payment with this transaction_id
        PaymentStateError: Payment not completed, has no payer, or already refunded
    """
    def _op() -> RefundResult:
        payment = _load_prepaid(transaction_id)

        if payment.status != PAYMENT_STATUS_COMPLETED or payment.user_id is None:
            raise PaymentStateError("Only settled prepaid payments can be refunded")
        if payment.refunded_at is not None:
            raise PaymentStateError("Payment already refunded")

        refunded_at = utcnow()
        claimed = apply_guarded_update(
            update(Payment)
            .where(Payment.id == payment.id, Payment.refunded_at.is_(None))
            .values(refunded_at=refunded_at)
        )
        if not claimed:
            db.session.rollback()
            raise PaymentStateError("Payment already refunded")

        user = db.session.get(User, payment.user_id)
        result = ledger_service.credit(
            user.uid,
            payment.amount,
            transaction_id=transaction_id,
            transaction_type=TRANSACTION_TYPE_REFUND,
            commit=False,
        )
        db.session.commit()

        current_app.logger.info(
            "Payment %s refunded: user=%s amount=%s balance=%s",
            transaction_id, user.id, payment.amount, result.balance,
        )
        return RefundResult(
            transaction_id=transaction_id,
            user_id=user.id,
            amount=payment.amount,
            balance=result.balance,
            refunded_at=refunded_at,
        )

    return run_with_retry(_op)
