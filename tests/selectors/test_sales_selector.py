"""Tests for SalesSelector: derived sales totals over the ledger."""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from pos_kernel.domain.dtos import CartLine, PaymentMethod
from pos_kernel.domain.values import Money
from pos_kernel.exceptions import SessionNotFoundError
from pos_kernel.selectors.sales_selector import normalize_end, normalize_start
from tests.conftest import FIXED_TIME, usd


def sell(ledger, total: str, when: datetime, method: str = "cash"):
    amount = usd(total)
    ledger.record_sale(
        [CartLine(name="Item", unit_price=amount.amount, quantity=1)],
        subtotal=amount,
        tax=Money.zero("USD"),
        total=amount,
        method=method,
        tendered_amount=amount,
        sale_date=when,
    )


class TestBounds:

    def test_date_start_is_midnight(self):
        assert normalize_start(date(2024, 1, 2)) == datetime(2024, 1, 2, tzinfo=timezone.utc)

    def test_date_end_is_end_of_day(self):
        assert normalize_end(date(2024, 1, 2)) == datetime(
            2024, 1, 2, 23, 59, 59, 999999, tzinfo=timezone.utc
        )

    def test_naive_datetime_taken_as_utc(self):
        assert normalize_start(datetime(2024, 1, 2, 8)) == datetime(2024, 1, 2, 8, tzinfo=timezone.utc)

    def test_none_is_unbounded(self):
        assert normalize_start(None) is None
        assert normalize_end(None) is None


class TestTotals:

    def test_empty_ledger_is_zero(self, sales_selector):
        assert sales_selector.sales_since(FIXED_TIME) == Money.zero("USD")

    def test_sales_since_is_inclusive(self, ledger, session, sales_selector):
        sell(ledger, "1.00", FIXED_TIME - timedelta(seconds=1))
        sell(ledger, "2.00", FIXED_TIME)
        sell(ledger, "3.00", FIXED_TIME + timedelta(hours=1))
        session.commit()

        assert sales_selector.sales_since(FIXED_TIME) == usd("5.00")

    def test_sales_between_by_method(self, ledger, session, sales_selector):
        sell(ledger, "10.00", FIXED_TIME, "cash")
        sell(ledger, "4.00", FIXED_TIME, "card")
        session.commit()

        end = FIXED_TIME + timedelta(minutes=1)
        assert sales_selector.sales_between(FIXED_TIME, end) == usd("14.00")
        assert sales_selector.sales_between(FIXED_TIME, end, PaymentMethod.CASH) == usd("10.00")
        assert sales_selector.sales_between(FIXED_TIME, end, "card") == usd("4.00")

    def test_totals_are_exact_decimals(self, ledger, session, sales_selector):
        for _ in range(10):
            sell(ledger, "0.10", FIXED_TIME)
        session.commit()
        assert sales_selector.sales_since(FIXED_TIME).amount == Decimal("1.00")


class TestSessionSales:

    def test_open_session_counts_everything_since_open(
        self, register_service, ledger, session, sales_selector
    ):
        info = register_service.open_session(usd("0"))
        sell(ledger, "1.00", FIXED_TIME - timedelta(minutes=1))
        sell(ledger, "2.50", FIXED_TIME + timedelta(days=3))
        session.commit()

        assert sales_selector.session_sales(info.id) == usd("2.50")

    def test_unknown_session(self, sales_selector):
        with pytest.raises(SessionNotFoundError):
            sales_selector.session_sales(uuid4())

    def test_range_listing_newest_first(self, ledger, session, sales_selector):
        sell(ledger, "1.00", FIXED_TIME)
        sell(ledger, "2.00", FIXED_TIME + timedelta(hours=2))
        session.commit()

        listed = sales_selector.sales_in_range()
        assert [r.total for r in listed] == [usd("2.00"), usd("1.00")]
