from __future__ import annotations

from ..extensions import db


ORDER_STATUS_PENDING = "pending"
ORDER_STATUS_COMPLETED = "completed"
ORDER_STATUS_CANCELLED = "cancelled"

PAYMENT_METHOD_CASH = "cash"
PAYMENT_METHOD_PREPAID = "prepaid"
VALID_PAYMENT_METHODS = (PAYMENT_METHOD_CASH, PAYMENT_METHOD_PREPAID)

PAYMENT_STATUS_PENDING = "pending"
PAYMENT_STATUS_COMPLETED = "completed"
PAYMENT_STATUS_FAILED = "failed"


class Order(db.Model):
    """
    Checkout document.

    total_amount is fixed at creation. status only moves forward
    (pending -> completed | cancelled).
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.CheckConstraint("total_amount >= 0", name="ck_orders_total_amount_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    total_amount = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(16), nullable=False, default=ORDER_STATUS_PENDING, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())


class OrderDetail(db.Model):
    """
    One line per distinct product on an order.

    name (from the catalog read) and price (as verified against it) are
    copied at checkout time so the line stays stable when the catalog
    changes later.
    """
    __tablename__ = "order_details"
    __table_args__ = (
        db.UniqueConstraint("order_id", "product_id", name="uq_order_details_order_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.String(64), db.ForeignKey("products.id"), nullable=False)

    name = db.Column(db.String(255), nullable=False)
    price = db.Column(db.Integer, nullable=False)
    quantity = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship("Order", backref=db.backref("details", lazy=True))
    product = db.relationship("Product")


class Payment(db.Model):
    """
    Settlement record for an order (exactly one per order).

    METHODS:
    - cash: settled at the register, completed on creation
    - prepaid: settled later by the customer from their prepaid balance

    transaction_id is the opaque public handle used for polling, the pay
    page and idempotent retries. status is the authoritative settlement
    state.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.UniqueConstraint("order_id", name="uq_payments_order"),
        db.CheckConstraint("amount >= 0", name="ck_payments_amount_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    transaction_id = db.Column(db.String(64), nullable=False, unique=True)
    amount = db.Column(db.Integer, nullable=False)
    method = db.Column(db.String(16), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=PAYMENT_STATUS_PENDING, index=True)

    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    refunded_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    order = db.relationship("Order", backref=db.backref("payment", uselist=False, lazy=True))
    user = db.relationship("User", backref=db.backref("payments", lazy=True))

    def to_dict(self) -> dict:
        """Public view: polling and settlement responses."""
        return {
            "transactionId": self.transaction_id,
            "amount": self.amount,
            "method": self.method,
            "status": self.status,
        }
