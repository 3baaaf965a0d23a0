"""
Prepaid settlement and refund tests.
"""

import pytest

from orderpay.models import Order, Payment, TransactionHistory
from orderpay.models.accounts import TRANSACTION_TYPE_PAYMENT, TRANSACTION_TYPE_REFUND
from orderpay.services import ledger_service, order_service, payment_service
from orderpay.services.ledger_service import InsufficientBalanceError, UserNotFoundError
from orderpay.services.order_service import OrderLine
from orderpay.services.payment_service import PaymentNotFoundError, PaymentStateError


@pytest.fixture
def prepaid_order(db_session, catalog):
    """Pending prepaid payment of 500."""
    catalog.set_items(("P1", "Tea", 500))
    result = order_service.create_order(
        [OrderLine(product_id="P1", name="Tea", price=500, quantity=1)], 500, "prepaid"
    )
    return result.transaction_id


def _payment(db_session, transaction_id):
    db_session.expire_all()
    return db_session.query(Payment).filter_by(transaction_id=transaction_id).one()


class TestSettlePrepaid:

    def test_settles_and_debits(self, db_session, make_user, balance_of, prepaid_order):
        user = make_user("u1", balance=800)

        payment = payment_service.settle_prepaid(prepaid_order, "u1")

        assert payment.status == "completed"
        assert payment.paid_at is not None
        assert payment.user_id == user.id
        assert balance_of("u1") == 300
        assert db_session.get(Order, payment.order_id).status == "completed"

        row = db_session.query(TransactionHistory).one()
        assert row.transaction_type == TRANSACTION_TYPE_PAYMENT
        assert row.transaction_id == prepaid_order
        assert row.amount == 500

    def test_insufficient_balance_leaves_payment_pending(self, db_session, make_user, balance_of, prepaid_order):
        make_user("u1", balance=300)

        with pytest.raises(InsufficientBalanceError):
            payment_service.settle_prepaid(prepaid_order, "u1")

        payment = _payment(db_session, prepaid_order)
        assert payment.status == "pending"
        assert payment.paid_at is None
        assert payment.user_id is None
        assert balance_of("u1") == 300
        assert db_session.query(TransactionHistory).count() == 0

    def test_settle_after_top_up(self, db_session, make_user, balance_of, prepaid_order):
        make_user("u1", balance=300)
        with pytest.raises(InsufficientBalanceError):
            payment_service.settle_prepaid(prepaid_order, "u1")

        ledger_service.credit("u1", 200)

        assert payment_service.settle_prepaid(prepaid_order, "u1").status == "completed"
        assert balance_of("u1") == 0

    def test_second_settlement_is_a_conflict(self, db_session, make_user, balance_of, prepaid_order):
        make_user("u1", balance=2000)

        payment_service.settle_prepaid(prepaid_order, "u1")
        with pytest.raises(PaymentStateError):
            payment_service.settle_prepaid(prepaid_order, "u1")

        assert balance_of("u1") == 1500
        assert db_session.query(TransactionHistory).count() == 1

    def test_unknown_transaction(self, db_session, make_user):
        make_user("u1", balance=1000)

        with pytest.raises(PaymentNotFoundError):
            payment_service.settle_prepaid("no-such-txn", "u1")

    def test_cash_payment_is_not_found(self, db_session, catalog, make_user):
        make_user("u1", balance=1000)
        catalog.set_items(("P1", "Tea", 500))
        cash = order_service.create_order(
            [OrderLine(product_id="P1", name="Tea", price=500, quantity=1)], 500, "cash"
        )

        with pytest.raises(PaymentNotFoundError):
            payment_service.settle_prepaid(cash.transaction_id, "u1")

    def test_unknown_user(self, db_session, prepaid_order):
        with pytest.raises(UserNotFoundError):
            payment_service.settle_prepaid(prepaid_order, "nobody")

        assert _payment(db_session, prepaid_order).status == "pending"


class TestRefundPrepaid:

    def test_refund_credits_payer(self, db_session, make_user, balance_of, prepaid_order):
        user = make_user("u1", balance=500)
        payment_service.settle_prepaid(prepaid_order, "u1")
        assert balance_of("u1") == 0

        result = payment_service.refund_prepaid(prepaid_order)

        assert result.user_id == user.id
        assert result.amount == 500
        assert result.balance == 500
        assert balance_of("u1") == 500

        payment = _payment(db_session, prepaid_order)
        assert payment.status == "completed"
        assert payment.refunded_at is not None

        types = [row.transaction_type for row in db_session.query(TransactionHistory).order_by(TransactionHistory.id)]
        assert types == [TRANSACTION_TYPE_PAYMENT, TRANSACTION_TYPE_REFUND]

    def test_refund_twice_is_a_conflict(self, db_session, make_user, balance_of, prepaid_order):
        make_user("u1", balance=500)
        payment_service.settle_prepaid(prepaid_order, "u1")
        payment_service.refund_prepaid(prepaid_order)

        with pytest.raises(PaymentStateError):
            payment_service.refund_prepaid(prepaid_order)

        assert balance_of("u1") == 500

    def test_pending_payment_cannot_be_refunded(self, db_session, prepaid_order):
        with pytest.raises(PaymentStateError):
            payment_service.refund_prepaid(prepaid_order)

    def test_unknown_transaction(self, db_session):
        with pytest.raises(PaymentNotFoundError):
            payment_service.refund_prepaid("no-such-txn")
