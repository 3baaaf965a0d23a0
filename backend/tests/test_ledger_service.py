"""
Prepaid ledger tests.

Verifies:
- credit/debit are single conditional updates with one history row each
- Insufficient balance writes nothing
- A repeated (transaction_id, type) is reported, not applied twice
"""

import pytest

from orderpay.models import TransactionHistory
from orderpay.models.accounts import TRANSACTION_TYPE_CHARGE, TRANSACTION_TYPE_PAYMENT
from orderpay.services import ledger_service
from orderpay.services.ledger_service import (
    InsufficientBalanceError,
    LedgerError,
    UserNotFoundError,
)


class TestCredit:

    def test_credit_increases_balance_and_records_charge(self, db_session, make_user, balance_of):
        user = make_user("u1")

        result = ledger_service.credit("u1", 1000)

        assert result.balance == 1000
        assert result.user_id == user.id
        assert result.replayed is False
        assert balance_of("u1") == 1000

        rows = db_session.query(TransactionHistory).filter_by(user_id=user.id).all()
        assert len(rows) == 1
        assert rows[0].transaction_type == TRANSACTION_TYPE_CHARGE
        assert rows[0].amount == 1000
        assert rows[0].transaction_id == result.transaction_id

    def test_unknown_user(self, db_session):
        with pytest.raises(UserNotFoundError):
            ledger_service.credit("nobody", 100)

        assert db_session.query(TransactionHistory).count() == 0

    @pytest.mark.parametrize("amount", [0, -5, True, 1.5])
    def test_rejects_non_positive_or_non_integer(self, db_session, make_user, amount):
        make_user("u1")

        with pytest.raises(LedgerError):
            ledger_service.credit("u1", amount)

    def test_repeated_transaction_id_is_not_applied_twice(self, db_session, make_user, balance_of):
        make_user("u1")
        txn = "5f0c7a36-3b7f-4a55-9d53-0e6b1c1c2a10"

        first = ledger_service.credit("u1", 500, transaction_id=txn)
        second = ledger_service.credit("u1", 500, transaction_id=txn)

        assert first.replayed is False
        assert second.replayed is True
        assert second.balance == 500
        assert balance_of("u1") == 500
        assert db_session.query(TransactionHistory).filter_by(transaction_id=txn).count() == 1

    def test_transaction_id_of_another_account_rejected(self, db_session, make_user, balance_of):
        make_user("u1")
        make_user("u2")
        txn = "5f0c7a36-3b7f-4a55-9d53-0e6b1c1c2a11"
        ledger_service.credit("u1", 500, transaction_id=txn)

        with pytest.raises(LedgerError):
            ledger_service.credit("u2", 500, transaction_id=txn)

        assert balance_of("u2") == 0


class TestDebit:

    def test_debit_within_balance(self, db_session, make_user, balance_of):
        make_user("u1", balance=800)

        result = ledger_service.debit("u1", 300)

        assert result.balance == 500
        assert balance_of("u1") == 500
        row = db_session.query(TransactionHistory).one()
        assert row.transaction_type == TRANSACTION_TYPE_PAYMENT
        assert row.amount == 300

    def test_debit_entire_balance(self, db_session, make_user, balance_of):
        make_user("u1", balance=500)

        assert ledger_service.debit("u1", 500).balance == 0
        assert balance_of("u1") == 0

    def test_insufficient_balance_writes_nothing(self, db_session, make_user, balance_of):
        make_user("u1", balance=300)

        with pytest.raises(InsufficientBalanceError) as exc_info:
            ledger_service.debit("u1", 500)

        assert exc_info.value.uid == "u1"
        assert exc_info.value.amount == 500
        assert balance_of("u1") == 300
        assert db_session.query(TransactionHistory).count() == 0

    def test_unknown_user(self, db_session):
        with pytest.raises(UserNotFoundError):
            ledger_service.debit("nobody", 100)


def test_credit_then_debit_restores_balance(db_session, make_user, balance_of):
    make_user("u1", balance=250)

    ledger_service.credit("u1", 700)
    ledger_service.debit("u1", 700)

    assert balance_of("u1") == 250
    types = [row.transaction_type for row in db_session.query(TransactionHistory).order_by(TransactionHistory.id)]
    assert types == [TRANSACTION_TYPE_CHARGE, TRANSACTION_TYPE_PAYMENT]


def test_history_is_newest_first(db_session, make_user):
    make_user("u1")
    make_user("u2")
    ledger_service.credit("u1", 100)
    ledger_service.credit("u1", 200)
    ledger_service.credit("u2", 999)
    ledger_service.debit("u1", 50)

    rows = ledger_service.get_history("u1")

    assert [row.amount for row in rows] == [50, 200, 100]
    assert ledger_service.get_history("u1", limit=1)[0].amount == 50
