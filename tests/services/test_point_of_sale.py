"""
End-to-end tests through PointOfSaleService.

Each facade call is its own committed unit of work, so these tests see
exactly what a second terminal would see.
"""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from pos_kernel.domain.denominations import CashCount
from pos_kernel.domain.dtos import CartLine, PaymentMethod, SessionState
from pos_kernel.exceptions import (
    CountAmountMismatchError,
    InsufficientTenderError,
    InvalidDenominationCountError,
    InvalidSettingError,
    NoOpenSessionError,
    PersistenceError,
    RegisterAlreadyOpenError,
    ValidationError,
)
from pos_kernel.models.setting import Setting
from pos_services.point_of_sale import PointOfSaleService
from pos_services.settings import REGISTER_INITIAL_AMOUNT_KEY, TAX_RATE_KEY
from tests.conftest import usd

COFFEE_CART = [{"id": 1, "name": "Coffee", "price": "10.00", "quantity": 3}]


@pytest.fixture
def broken_pos(tmp_path, deterministic_clock, settings):
    """A facade whose database cannot be opened."""
    engine = create_engine(f"sqlite:///{tmp_path / 'missing' / 'pos.db'}")
    yield PointOfSaleService(
        sessionmaker(bind=engine), clock=deterministic_clock, settings=settings
    )
    engine.dispose()


class TestOpenRegister:

    def test_amount_derived_from_count(self, pos):
        info = pos.open_register(details={"bills": {"100": 1, "20": 2}, "coins": {"0.25": 2}})
        assert info.opening_amount == usd("140.50")
        assert info.opening_details == {"bills": {"100": 1, "20": 2}, "coins": {"0.25": 2}}

    def test_amount_and_count_must_agree(self, pos):
        with pytest.raises(CountAmountMismatchError):
            pos.open_register("150.00", {"bills": {"100": 1}})
        assert pos.register_status().is_open is False

    def test_one_cent_disagreement_tolerated(self, pos):
        info = pos.open_register("100.01", {"bills": {"100": 1}})
        assert info.opening_amount == usd("100.01")

    def test_defaults_to_initial_amount_setting(self, pos):
        info = pos.open_register()
        assert info.opening_amount == usd("150.00")
        assert info.opening_details is None

    def test_invalid_count_rejected(self, pos):
        with pytest.raises(InvalidDenominationCountError):
            pos.open_register(details={"bills": {"20": -1}})

    def test_unparsable_amount_rejected(self, pos):
        with pytest.raises(ValidationError):
            pos.open_register("ten dollars")
        with pytest.raises(ValidationError):
            pos.open_register(True)

    def test_second_open_refused(self, pos):
        pos.open_register("100")
        with pytest.raises(RegisterAlreadyOpenError):
            pos.open_register("100")
        assert len(pos.register_sessions_report()) == 1


class TestSales:

    def test_priced_with_store_tax_rate(self, pos):
        sale = pos.record_sale(COFFEE_CART, "cash", "40")
        assert sale.subtotal == usd("30.00")
        assert sale.tax == usd("2.48")
        assert sale.total == usd("32.48")
        assert sale.change_due == usd("7.52")
        assert sale.method == PaymentMethod.CASH
        assert pos.list_transactions() == [sale]

    def test_rejected_sale_leaves_no_row(self, pos):
        with pytest.raises(InsufficientTenderError):
            pos.record_sale(COFFEE_CART, "cash", "20")
        assert pos.list_transactions() == []

    def test_bad_cart_line(self, pos):
        with pytest.raises(ValidationError, match="cart line 0"):
            pos.record_sale([{"name": "x", "price": "abc"}], "cash", "1")

    def test_sale_without_open_register_is_allowed(self, pos):
        assert pos.register_status().is_open is False
        pos.record_sale(COFFEE_CART, "card", "32.48")
        assert len(pos.list_transactions()) == 1

    def test_tax_rate_read_from_settings_table(self, session_factory, deterministic_clock, session):
        session.add(Setting(key=TAX_RATE_KEY, value="10"))
        session.commit()

        pos = PointOfSaleService(session_factory, clock=deterministic_clock)
        sale = pos.record_sale(COFFEE_CART, "card", "33.00")
        assert sale.tax == usd("3.00")

    def test_missing_settings_read_as_zero(self, session_factory, deterministic_clock):
        pos = PointOfSaleService(session_factory, clock=deterministic_clock)
        assert pos.record_sale(COFFEE_CART, "card", "30").tax.is_zero
        assert pos.open_register().opening_amount == usd("0")

    def test_recorded_items_survive_later_setting_changes(
        self, session_factory, deterministic_clock, session
    ):
        tax = Setting(key=TAX_RATE_KEY, value="10")
        session.add(tax)
        session.commit()

        pos = PointOfSaleService(session_factory, clock=deterministic_clock)
        sale = pos.record_sale(COFFEE_CART, "card", "33.00")

        tax.value = "20"
        session.commit()

        [listed] = pos.list_transactions()
        assert listed.id == sale.id
        assert listed.items == (
            CartLine(name="Coffee", unit_price=Decimal("10.00"), quantity=3, product_id="1"),
        )
        assert listed.tax == usd("3.00")
        assert listed.total == usd("33.00")

    def test_invalid_setting(self, session_factory, deterministic_clock, session):
        session.add(Setting(key=REGISTER_INITIAL_AMOUNT_KEY, value="lots"))
        session.commit()

        pos = PointOfSaleService(session_factory, clock=deterministic_clock)
        with pytest.raises(InvalidSettingError):
            pos.open_register()


class TestCloseRegister:

    def test_full_day(self, pos, deterministic_clock):
        opened = pos.open_register(details={"bills": {"100": 1, "50": 1}})
        deterministic_clock.advance(60)
        pos.record_sale(COFFEE_CART, "cash", "40")
        pos.record_sale(COFFEE_CART, "card", "32.48")

        current = pos.current_session()
        assert current.session.id == opened.id
        assert current.sales == usd("64.96")

        deterministic_clock.advance(60)
        summary = pos.close_register(details={"bills": {"100": 1, "50": 1, "20": 1, "10": 1}, "coins": {"1": 2, "0.25": 1, "0.10": 2, "0.01": 3}})

        assert summary.session.status == SessionState.CLOSED
        assert summary.closing_amount == usd("182.48")
        assert summary.session_sales == usd("64.96")
        assert summary.cash_sales == usd("32.48")
        assert summary.expected_cash == usd("182.48")
        assert summary.over_short.is_zero
        assert summary.takeout == usd("32.48")

        assert pos.register_status().is_open is False
        assert pos.current_session() is None
        assert pos.session_sales(opened.id) == usd("64.96")
        assert pos.get_register_session(opened.id).closing_details["coins"] == {
            "1": 2, "0.25": 1, "0.10": 2, "0.01": 3,
        }

    def test_close_needs_a_count(self, pos):
        pos.open_register("100")
        with pytest.raises(ValidationError):
            pos.close_register()

    def test_close_without_open(self, pos):
        with pytest.raises(NoOpenSessionError):
            pos.close_register("0")

    def test_second_close_changes_nothing(self, pos, deterministic_clock):
        opened = pos.open_register("100")
        deterministic_clock.advance(60)
        first = pos.close_register("100")

        deterministic_clock.advance(60)
        with pytest.raises(NoOpenSessionError):
            pos.close_register("250")

        assert [s.id for s in pos.register_sessions_report()] == [opened.id]
        assert pos.get_register_session(opened.id) == first.session

    def test_current_session_is_stable_without_writes(self, pos, deterministic_clock):
        pos.open_register("100")
        pos.record_sale(COFFEE_CART, "cash", "40")
        deterministic_clock.advance(60)

        first = pos.current_session()
        second = pos.current_session()
        assert first == second
        assert second.sales == usd("32.48")

    def test_cash_count_object_accepted(self, pos):
        pos.open_register("0")
        count = CashCount(bills={Decimal("5"): 1})
        assert pos.close_register(details=count).closing_amount == usd("5.00")


class TestReports:

    def test_sessions_report_by_day(self, pos, deterministic_clock):
        pos.open_register("10")
        pos.close_register("10")
        deterministic_clock.advance(86400)
        pos.open_register("20")

        report = pos.register_sessions_report()
        assert [s.opening_amount for s in report] == [usd("20"), usd("10")]
        assert report[0].is_open
        assert len(pos.register_sessions_report(date(2024, 1, 2), date(2024, 1, 2))) == 1

    def test_opening_prefill(self, pos):
        count = pos.opening_prefill()
        assert count.bills == {Decimal("100"): 1, Decimal("50"): 1}
        assert count.remainder.is_zero


class TestStorageFailures:

    def test_status_degrades_to_closed(self, broken_pos, captured_logs):
        assert broken_pos.register_status().is_open is False
        assert any(r["message"] == "register_status_degraded" for r in captured_logs())

    def test_open_raises_persistence_error(self, broken_pos, captured_logs):
        with pytest.raises(PersistenceError) as exc_info:
            broken_pos.open_register("10")
        assert isinstance(exc_info.value.__cause__, OperationalError)
        assert exc_info.value.code == "PERSISTENCE_FAILURE"
        failures = [r for r in captured_logs() if r["message"] == "persistence_failure"]
        assert failures[0]["operation"] == "open_register"

    def test_sale_raises_persistence_error(self, broken_pos):
        with pytest.raises(PersistenceError):
            broken_pos.record_sale(COFFEE_CART, "cash", "40")
