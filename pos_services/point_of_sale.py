"""
pos_services.point_of_sale -- caller-facing register operations.

Responsibility:
    The one object a front end talks to.  Each public method is one unit
    of work: it opens a session, wires the kernel services into it, and
    commits or rolls back as a whole.  Loosely typed input (amounts as
    strings, carts as dicts, denomination payloads) is parsed here before
    it reaches the kernel.

Architecture position:
    Services -- orchestration over pos_kernel.  The only place where kernel
    services are constructed and composed, and the only place that owns
    transaction boundaries.

Invariants enforced:
    - No partial writes: a sale or a session transition fully commits or is
      entirely absent.
    - Storage failures surface as PersistenceError with the SQLAlchemy
      exception chained as ``__cause__``.
    - Domain errors (validation, conflict, not found) pass through
      unchanged and are never retried.
    - A declared drawer amount must agree with its denomination count
      within one minor unit.

Usage:
    service = PointOfSaleService(get_session_factory(), config=get_active_config())
    service.open_register(details={"bills": {"100": 1}, "coins": {"0.25": 2}})
    service.record_sale([{"name": "Coffee", "price": "3.50", "quantity": 2}], "cash", "10")
"""

from __future__ import annotations

from collections.abc import Generator, Mapping, Sequence
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from pos_config.schema import PosConfig
from pos_kernel.db.engine import get_session_factory, session_scope
from pos_kernel.db.immutability import register_immutability_listeners
from pos_kernel.domain.clock import Clock, SystemClock
from pos_kernel.domain.denominations import CashCount, DenominationLadder
from pos_kernel.domain.dtos import (
    CartLine,
    CurrentSession,
    PaymentMethod,
    RegisterSessionInfo,
    RegisterStatus,
    SessionSummary,
    TransactionRecord,
)
from pos_kernel.domain.sale_computation import compute_totals
from pos_kernel.domain.values import Currency, Money
from pos_kernel.exceptions import (
    CountAmountMismatchError,
    PersistenceError,
    ValidationError,
)
from pos_kernel.logging_config import LogContext, get_logger
from pos_kernel.selectors.sales_selector import Bound, SalesSelector
from pos_kernel.services.register_session_service import RegisterSessionService
from pos_kernel.services.transaction_ledger import TransactionLedger
from pos_services.settings import (
    SettingsStore,
    SqlSettingsStore,
    register_initial_amount,
    tax_rate_percent,
)

logger = get_logger("services.point_of_sale")


class PointOfSaleService:
    """
    Register front door.

    Contract:
        Every public method runs in its own transaction.  Return values are
        frozen DTOs that stay valid after the transaction closes.

    Non-goals:
        - Does NOT authenticate.  Callers verify credentials before calling.
        - Does NOT edit products, users or settings.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session] | None = None,
        clock: Clock | None = None,
        config: PosConfig | None = None,
        settings: SettingsStore | None = None,
    ):
        self._factory = session_factory or get_session_factory()
        self._clock = clock or SystemClock()
        self._config = config or PosConfig()
        self._settings = settings

        self.currency = Currency(self._config.store.currency)
        register = self._config.register
        if register.bills and register.coins:
            self.ladder = DenominationLadder(
                bills=register.bills, coins=register.coins, currency=self.currency
            )
        else:
            self.ladder = DenominationLadder(currency=self.currency)

        register_immutability_listeners()

    # =========================================================================
    # Unit of work
    # =========================================================================

    @contextmanager
    def _unit_of_work(self, operation: str) -> Generator[Session, None, None]:
        with LogContext.bind(operation=operation):
            try:
                with session_scope(self._factory) as session:
                    yield session
            except SQLAlchemyError as exc:
                logger.error(
                    "persistence_failure",
                    extra={"operation": operation, "error_type": type(exc).__name__},
                    exc_info=True,
                )
                raise PersistenceError(operation, type(exc).__name__) from exc

    def _sessions(self, session: Session) -> RegisterSessionService:
        return RegisterSessionService(session, self._clock, self.currency)

    def _ledger(self, session: Session) -> TransactionLedger:
        return TransactionLedger(
            session,
            self._clock,
            self.currency,
            receipt_prefix=self._config.receipts.prefix,
        )

    def _settings_for(self, session: Session) -> SettingsStore:
        return self._settings if self._settings is not None else SqlSettingsStore(session)

    # =========================================================================
    # Input parsing
    # =========================================================================

    def _to_money(self, value: Money | Decimal | int | str | float, label: str) -> Money:
        if isinstance(value, Money):
            if value.currency != self.currency:
                raise ValidationError(
                    f"{label} currency {value.currency} does not match register currency {self.currency}"
                )
            return value
        if isinstance(value, bool):
            raise ValidationError(f"{label} is not an amount: {value!r}")
        try:
            amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
        except InvalidOperation as exc:
            raise ValidationError(f"{label} is not an amount: {value!r}") from exc
        if not amount.is_finite():
            raise ValidationError(f"{label} is not an amount: {value!r}")
        return Money(amount, self.currency)

    def _parse_count(
        self,
        amount: Money | Decimal | int | str | None,
        details: Mapping[str, Any] | CashCount | None,
        label: str,
    ) -> tuple[Money | None, dict[str, Any] | None]:
        declared = self._to_money(amount, label) if amount is not None else None
        if details is None:
            return declared, None

        count = details if isinstance(details, CashCount) else CashCount.from_details(details)
        counted = count.total(self.currency)
        if declared is None:
            declared = counted
        elif not declared.within_tolerance(counted):
            raise CountAmountMismatchError(declared.amount, counted.amount)
        return declared, count.to_details(self.currency)

    @staticmethod
    def _parse_cart(cart: Sequence[CartLine | Mapping[str, Any]]) -> list[CartLine]:
        lines = []
        for index, line in enumerate(cart):
            if isinstance(line, CartLine):
                lines.append(line)
                continue
            try:
                lines.append(CartLine.from_mapping(line))
            except (ValueError, TypeError) as exc:
                raise ValidationError(f"Invalid cart line {index}: {exc}") from exc
        return lines

    # =========================================================================
    # Register lifecycle
    # =========================================================================

    def open_register(
        self,
        opening_amount: Money | Decimal | int | str | None = None,
        details: Mapping[str, Any] | CashCount | None = None,
    ) -> RegisterSessionInfo:
        """
        Open the register.

        With neither an amount nor a count, the ``register_initial_amount``
        setting is used as the opening float.

        Raises:
            RegisterAlreadyOpenError, ValidationError, PersistenceError
        """
        amount, payload = self._parse_count(opening_amount, details, "Opening amount")
        with self._unit_of_work("open_register") as session:
            if amount is None:
                amount = Money(
                    register_initial_amount(self._settings_for(session)), self.currency
                )
            return self._sessions(session).open_session(amount, payload)

    def close_register(
        self,
        closing_amount: Money | Decimal | int | str | None = None,
        details: Mapping[str, Any] | CashCount | None = None,
    ) -> SessionSummary:
        """
        Close the register with the counted drawer.

        Raises:
            NoOpenSessionError, ValidationError, PersistenceError
        """
        amount, payload = self._parse_count(closing_amount, details, "Closing amount")
        if amount is None:
            raise ValidationError("Closing requires a counted amount or denomination details")
        with self._unit_of_work("close_register") as session:
            return self._sessions(session).close_session(amount, payload)

    def current_session(self) -> CurrentSession | None:
        with self._unit_of_work("current_session") as session:
            return self._sessions(session).current_session()

    def register_status(self) -> RegisterStatus:
        """Never raises: an unreachable store reads as closed."""
        try:
            with self._unit_of_work("register_status") as session:
                return self._sessions(session).status()
        except PersistenceError:
            logger.warning("register_status_degraded")
            return RegisterStatus(is_open=False)

    def get_register_session(self, session_id: UUID | str) -> RegisterSessionInfo:
        with self._unit_of_work("get_register_session") as session:
            return self._sessions(session).get_session(session_id)

    def opening_prefill(self) -> CashCount:
        """Greedy breakdown of the ``register_initial_amount`` setting."""
        with self._unit_of_work("opening_prefill") as session:
            target = register_initial_amount(self._settings_for(session))
        return self.ladder.prefill(Money(target, self.currency))

    def register_sessions_report(
        self, start: Bound = None, end: Bound = None
    ) -> list[RegisterSessionInfo]:
        with self._unit_of_work("register_sessions_report") as session:
            return self._sessions(session).list_sessions(start, end)

    # =========================================================================
    # Sales
    # =========================================================================

    def record_sale(
        self,
        cart: Sequence[CartLine | Mapping[str, Any]],
        method: PaymentMethod | str,
        tendered: Money | Decimal | int | str,
        receipt_number: str | None = None,
        sale_date: datetime | None = None,
    ) -> TransactionRecord:
        """
        Price a cart with the store tax rate and record it.

        Raises:
            ValidationError (and subclasses), PersistenceError
        """
        lines = self._parse_cart(cart)
        tendered_money = self._to_money(tendered, "Tendered amount")
        with self._unit_of_work("record_sale") as session:
            rate = tax_rate_percent(self._settings_for(session))
            totals = compute_totals(lines, rate, self.currency)
            return self._ledger(session).record_sale(
                lines,
                subtotal=totals.subtotal,
                tax=totals.tax,
                total=totals.total,
                method=method,
                tendered_amount=tendered_money,
                receipt_number=receipt_number,
                sale_date=sale_date,
            )

    def list_transactions(
        self, start: Bound = None, end: Bound = None
    ) -> list[TransactionRecord]:
        with self._unit_of_work("list_transactions") as session:
            return self._ledger(session).list(start, end)

    def session_sales(self, session_id: UUID | str) -> Money:
        """
        Raises:
            SessionNotFoundError, PersistenceError
        """
        with self._unit_of_work("session_sales") as session:
            return SalesSelector(session, self.currency).session_sales(session_id)
