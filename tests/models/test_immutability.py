"""
ORM-level immutability of recorded sales and register sessions.

Recorded transactions are append-only.  A register session may be updated
exactly once, by its close; opening fields never change and a closed
session is frozen.
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from pos_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from pos_kernel.domain.dtos import CartLine
from pos_kernel.domain.values import Money
from pos_kernel.exceptions import ImmutabilityViolationError
from pos_kernel.models.register_session import RegisterSession, SessionStatus
from pos_kernel.models.transaction import Transaction
from tests.conftest import FIXED_TIME, usd


@pytest.fixture
def recorded_sale(ledger, session):
    amount = usd("5.00")
    record = ledger.record_sale(
        [CartLine(name="Item", unit_price=amount.amount, quantity=1)],
        subtotal=amount,
        tax=Money.zero("USD"),
        total=amount,
        method="cash",
        tendered_amount=amount,
    )
    session.commit()
    return session.get(Transaction, record.id)


@pytest.fixture
def open_session_row(register_service, session):
    info = register_service.open_session(usd("100"))
    session.commit()
    return session.get(RegisterSession, info.id)


class TestTransactionImmutability:

    def test_update_blocked(self, recorded_sale, session):
        recorded_sale.total = Decimal("1.00")
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "Transaction"

    def test_delete_blocked(self, recorded_sale, session):
        session.delete(recorded_sale)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_violation_is_logged(self, recorded_sale, session, captured_logs):
        recorded_sale.method = "card"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        blocked = [r for r in captured_logs() if r["message"] == "immutability_violation_blocked"]
        assert blocked[0]["entity_type"] == "Transaction"
        assert blocked[0]["field"] == "method"


class TestRegisterSessionImmutability:

    def test_opening_amount_frozen(self, open_session_row, session):
        open_session_row.opening_amount = Decimal("1.00")
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_opened_at_frozen(self, open_session_row, session):
        open_session_row.opened_at = FIXED_TIME - timedelta(days=1)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_close_allowed_once(self, open_session_row, session):
        open_session_row.close(FIXED_TIME, Decimal("100.00"), None)
        session.flush()
        assert open_session_row.status == SessionStatus.CLOSED

        open_session_row.closing_amount = Decimal("90.00")
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_reopen_blocked(self, open_session_row, session):
        open_session_row.close(FIXED_TIME, Decimal("100.00"), None)
        session.commit()

        open_session_row.status = SessionStatus.OPEN
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_model_refuses_second_close(self, open_session_row, session):
        open_session_row.close(FIXED_TIME, Decimal("100.00"), None)
        with pytest.raises(ValueError):
            open_session_row.close(FIXED_TIME, Decimal("100.00"), None)

    def test_delete_blocked(self, open_session_row, session):
        session.delete(open_session_row)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()


def test_listener_registration_is_idempotent(recorded_sale, session):
    register_immutability_listeners()
    register_immutability_listeners()
    unregister_immutability_listeners()
    try:
        # With the listeners removed the update goes through
        recorded_sale.receipt_number = "EDITED"
        session.flush()
    finally:
        register_immutability_listeners()
