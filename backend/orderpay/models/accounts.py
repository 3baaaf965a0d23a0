from __future__ import annotations

from ..extensions import db
from orderpay.time_utils import to_utc_z


TRANSACTION_TYPE_CHARGE = "charge"
TRANSACTION_TYPE_PAYMENT = "payment"
TRANSACTION_TYPE_REFUND = "refund"


class User(db.Model):
    """
    Prepaid account keyed by the external identity subject (uid).

    Created lazily on the first authenticated profile lookup. balance is
    only ever changed by single-statement updates in ledger_service; the
    CHECK constraint is the storage-level backstop for balance >= 0.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.CheckConstraint("balance >= 0", name="ck_users_balance_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    uid = db.Column(db.String(128), nullable=False, unique=True)
    balance = db.Column(db.Integer, nullable=False, default=0, server_default="0")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "uid": self.uid,
            "balance": self.balance,
        }


class TransactionHistory(db.Model):
    """
    Append-only ledger of balance mutations.

    TRANSACTION TYPES:
    - charge: balance credited by an administrator
    - payment: balance debited to settle a prepaid payment
    - refund: balance credited back for a refunded prepaid payment

    amount is always positive; the type carries the direction.
    One row per successful balance mutation. (transaction_id,
    transaction_type) is unique so a replayed charge/payment/refund
    cannot record twice.

    IMMUTABLE: Records are never updated or deleted.
    """
    __tablename__ = "transaction_history"
    __table_args__ = (
        db.UniqueConstraint("transaction_id", "transaction_type", name="uq_transaction_history_txn_type"),
        db.Index("ix_transaction_history_user_created", "user_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.String(64), nullable=True, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    amount = db.Column(db.Integer, nullable=False)
    transaction_type = db.Column(db.String(16), nullable=False, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    user = db.relationship("User", backref=db.backref("transactions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "transactionId": self.transaction_id,
            "amount": self.amount,
            "transactionType": self.transaction_type,
            "createdAt": to_utc_z(self.created_at),
        }
