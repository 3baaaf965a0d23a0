# Overview: Service-layer operations for the prepaid balance ledger; atomic credit/debit plus the history trail.

from __future__ import annotations

import uuid
from dataclasses import dataclass

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import User, TransactionHistory
from ..models.accounts import (
    TRANSACTION_TYPE_CHARGE,
    TRANSACTION_TYPE_PAYMENT,
    TRANSACTION_TYPE_REFUND,
)
from .concurrency import apply_guarded_update, run_with_retry
"""
Prepaid Ledger Invariants (authoritative)

- users.balance >= 0 at all times.
- Every balance change is ONE UPDATE statement: credit is
  balance = balance + :amount, debit is balance = balance - :amount
  WHERE balance >= :amount. The affected row count is the only success
  signal. Never read a balance, compute in Python and write it back.
- Exactly one transaction_history row per successful mutation, written
  after the mutation is confirmed. Failed mutations write nothing.
- (transaction_id, transaction_type) identifies one logical mutation;
  replaying it reports the recorded result without mutating again.
"""

VALID_TRANSACTION_TYPES = (
    TRANSACTION_TYPE_CHARGE,
    TRANSACTION_TYPE_PAYMENT,
    TRANSACTION_TYPE_REFUND,
)


class LedgerError(Exception):
    """Raised for ledger operation errors."""
    pass


class UserNotFoundError(LedgerError):
    pass


class InsufficientBalanceError(LedgerError):
    def __init__(self, uid: str, amount: int):
        super().__init__("Insufficient balance")
        self.uid = uid
        self.amount = amount


@dataclass(frozen=True)
class LedgerResult:
    user_id: int
    uid: str
    transaction_id: str
    amount: int
    balance: int
    replayed: bool = False


def new_transaction_id() -> str:
    """Fresh opaque 128-bit random identifier (UUID4, canonical form)."""
    return str(uuid.uuid4())


def append_history(
    *,
    user_id: int,
    amount: int,
    transaction_type: str,
    transaction_id: str | None = None,
) -> TransactionHistory:
    """
    Append-only history row.

    - No balance logic here.
    - No deletes/updates of existing rows.
    """
    if transaction_type not in VALID_TRANSACTION_TYPES:
        raise LedgerError(f"Invalid transaction type: {transaction_type}")

    row = TransactionHistory(
        transaction_id=transaction_id,
        user_id=user_id,
        amount=amount,
        transaction_type=transaction_type,
    )
    db.session.add(row)
    db.session.flush()  # surfaces a duplicate (transaction_id, type) here
    return row


def find_recorded(transaction_id: str, transaction_type: str) -> TransactionHistory | None:
    return (
        db.session.query(TransactionHistory)
        .filter_by(transaction_id=transaction_id, transaction_type=transaction_type)
        .first()
    )


def _current_balance(uid: str) -> tuple[int, int] | None:
    row = db.session.query(User.id, User.balance).filter(User.uid == uid).first()
    if row is None:
        return None
    return row.id, row.balance


def _replay(uid: str, recorded: TransactionHistory) -> LedgerResult:
    current = _current_balance(uid)
    if current is None:
        raise UserNotFoundError(f"User {uid} not found")
    user_id, balance = current
    if recorded.user_id != user_id:
        raise LedgerError(f"Transaction {recorded.transaction_id} belongs to another account")
    return LedgerResult(
        user_id=user_id,
        uid=uid,
        transaction_id=recorded.transaction_id,
        amount=recorded.amount,
        balance=balance,
        replayed=True,
    )


def _require_positive(amount) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise LedgerError("Amount must be a positive integer")


def _mutate(
    *,
    uid: str,
    amount: int,
    delta: int,
    transaction_type: str,
    transaction_id: str | None,
    commit: bool,
) -> LedgerResult:
    _require_positive(amount)
    transaction_id = transaction_id or new_transaction_id()

    def _op() -> LedgerResult:
        recorded = find_recorded(transaction_id, transaction_type)
        if recorded is not None:
            return _replay(uid, recorded)

        stmt = update(User).where(User.uid == uid)
        if delta < 0:
            # The precondition lives in the same statement as the write
            stmt = stmt.where(User.balance >= amount)
        stmt = stmt.values(balance=User.balance + delta)

        if not apply_guarded_update(stmt):
            if _current_balance(uid) is None:
                raise UserNotFoundError(f"User {uid} not found")
            raise InsufficientBalanceError(uid, amount)

        # Our own uncommitted write; concurrent writers are blocked on the row
        user_id, balance = _current_balance(uid)
        append_history(
            user_id=user_id,
            amount=amount,
            transaction_type=transaction_type,
            transaction_id=transaction_id,
        )
        if commit:
            db.session.commit()

        return LedgerResult(
            user_id=user_id,
            uid=uid,
            transaction_id=transaction_id,
            amount=amount,
            balance=balance,
        )

    if not commit:
        # Caller owns the unit of work, its retry and its rollback
        return _op()

    try:
        return run_with_retry(_op)
    except LedgerError:
        # Release the row lock taken by a refused update
        db.session.rollback()
        raise
    except IntegrityError:
        # Lost a race with an identical transaction_id; its mutation stands, ours is undone
        db.session.rollback()
        recorded = find_recorded(transaction_id, transaction_type)
        if recorded is None:
            raise
        return _replay(uid, recorded)


def credit(
    uid: str,
    amount: int,
    *,
    transaction_id: str | None = None,
    transaction_type: str = TRANSACTION_TYPE_CHARGE,
    commit: bool = True,
) -> LedgerResult:
    """
    Increase a user's balance by amount (single atomic increment).

    Args:
        uid: External identity of the account
        amount: Positive amount in the smallest currency unit
        transaction_id: Idempotency key; generated when omitted
        transaction_type: charge (admin top-up) or refund
        commit: False to leave the commit to the caller's unit of work

    Returns:
        LedgerResult with the balance after the credit

    Raises:
        UserNotFoundError: If no account exists for uid
        LedgerError: If amount is not a positive integer
    """
    return _mutate(
        uid=uid,
        amount=amount,
        delta=amount,
        transaction_type=transaction_type,
        transaction_id=transaction_id,
        commit=commit,
    )


def debit(
    uid: str,
    amount: int,
    *,
    transaction_id: str | None = None,
    transaction_type: str = TRANSACTION_TYPE_PAYMENT,
    commit: bool = True,
) -> LedgerResult:
    """
    Decrease a user's balance by amount only if balance >= amount.

    Racing debits against the same account serialize on the row; each one
    re-evaluates the WHERE clause against the committed balance, so at
    most floor(balance / amount) of them succeed and balance never goes
    negative.

    Raises:
        InsufficientBalanceError: If balance < amount (nothing written)
        UserNotFoundError: If no account exists for uid
    """
    return _mutate(
        uid=uid,
        amount=amount,
        delta=-amount,
        transaction_type=transaction_type,
        transaction_id=transaction_id,
        commit=commit,
    )


def get_history(uid: str, limit: int = 100) -> list[TransactionHistory]:
    """History rows for a user, newest first."""
    return (
        db.session.query(TransactionHistory)
        .join(User, User.id == TransactionHistory.user_id)
        .filter(User.uid == uid)
        .order_by(TransactionHistory.created_at.desc(), TransactionHistory.id.desc())
        .limit(limit)
        .all()
    )
