# Overview: Read-side lookups for payments and profiles polled by clients and admins.

from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Payment, User
from ..models.orders import PAYMENT_METHOD_PREPAID
from .payment_service import PaymentNotFoundError


def get_payment(transaction_id: str) -> Payment:
    """Payment of any method by its transaction id."""
    payment = db.session.query(Payment).filter_by(transaction_id=transaction_id).first()
    if not payment:
        raise PaymentNotFoundError("Payment not found")
    return payment


def get_prepaid_payment(transaction_id: str) -> Payment:
    """Prepaid payment by transaction id; cash payments are reported as not found."""
    payment = (
        db.session.query(Payment)
        .filter_by(transaction_id=transaction_id, method=PAYMENT_METHOD_PREPAID)
        .first()
    )
    if not payment:
        raise PaymentNotFoundError("Payment not found")
    return payment


def get_or_create_user(uid: str) -> User:
    """
    Account for an external identity, created with balance 0 on first sight.

    Two first-time lookups racing for the same uid are settled by the
    unique constraint on users.uid; the loser re-reads the winner's row.
    """
    user = db.session.query(User).filter_by(uid=uid).first()
    if user:
        return user

    user = User(uid=uid, balance=0)
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        user = db.session.query(User).filter_by(uid=uid).first()
        if user is None:
            raise
    return user
