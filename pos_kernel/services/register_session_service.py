"""
RegisterSessionService -- register open/close lifecycle and reconciliation.

Responsibility:
    Opens and closes register sessions, answers "is the register open?",
    and produces the close-out reconciliation (takeout, expected cash,
    over/short).

Architecture position:
    Kernel > Services -- imperative shell.
    Called by PointOfSaleService, one unit of work per call.

Invariants enforced:
    - At most one open session.  The pre-check read gives a friendly error
      in the common case; the partial unique index decides the race.  An
      IntegrityError at flush means another terminal opened first.
    - Closed is terminal.  The open row is read FOR UPDATE (PostgreSQL) and
      the versioned UPDATE refuses to apply if another closer already won.
    - Openness is always derived from the store, never cached in process.
    - Flush-only: never commits.

Failure modes:
    - RegisterAlreadyOpenError: open while a session is open.
    - NoOpenSessionError: close with no open session, or close lost a race.
    - SessionNotFoundError: get_session() with an unknown id.

Audit relevance:
    Opens, closes and rejected opens are logged with structured fields
    (session_id, amounts).  A degraded status probe is logged at WARNING.
"""

from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from pos_kernel.domain.clock import Clock, SystemClock
from pos_kernel.domain.dtos import (
    CurrentSession,
    PaymentMethod,
    RegisterSessionInfo,
    RegisterStatus,
    SessionSummary,
)
from pos_kernel.domain.values import Currency, Money
from pos_kernel.exceptions import (
    NoOpenSessionError,
    RegisterAlreadyOpenError,
    SessionNotFoundError,
    ValidationError,
)
from pos_kernel.logging_config import LogContext, get_logger
from pos_kernel.models.register_session import RegisterSession, SessionStatus
from pos_kernel.selectors.sales_selector import (
    Bound,
    SalesSelector,
    normalize_end,
    normalize_start,
)
from pos_kernel.services.base import BaseService

logger = get_logger("services.register_session")


class RegisterSessionService(BaseService[RegisterSession]):
    """
    Service for the register session lifecycle.

    Contract:
        Accepts Money amounts and opaque denomination details; returns
        frozen DTOs.  Lifecycle methods flush within the caller's
        transaction.

    Guarantees:
        - open_session() either inserts the single open row or raises
          RegisterAlreadyOpenError; never both.
        - close_session() transitions exactly one row from OPEN to CLOSED.
        - status() never raises a storage error.

    Non-goals:
        - Does NOT validate denomination details; callers pass the audit
          payload already checked (see PointOfSaleService).
        - Does NOT record sales (TransactionLedger does).
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        currency: Currency | str = "USD",
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self.currency = Currency(currency) if isinstance(currency, str) else currency
        self._sales = SalesSelector(session, self.currency)

    def _to_dto(self, register_session: RegisterSession) -> RegisterSessionInfo:
        return RegisterSessionInfo.from_model(register_session, self.currency)

    def _check_amount(self, amount: Money, label: str) -> Money:
        if amount.currency != self.currency:
            raise ValidationError(
                f"{label} currency {amount.currency} does not match register currency {self.currency}"
            )
        if amount.is_negative:
            raise ValidationError(f"{label} must not be negative: {amount}")
        rounded = amount.round()
        if rounded != amount:
            raise ValidationError(
                f"{label} has more precision than {self.currency} allows: {amount}"
            )
        return rounded

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def open_session(
        self,
        opening_amount: Money,
        opening_details: dict[str, Any] | None = None,
    ) -> RegisterSessionInfo:
        """
        Open the register.

        Raises:
            RegisterAlreadyOpenError: A session is already open.
            ValidationError: Negative or over-precise opening amount.
        """
        opening_amount = self._check_amount(opening_amount, "Opening amount")

        existing = self._get_open_session_orm()
        if existing is not None:
            logger.warning(
                "register_open_conflict",
                extra={"open_session_id": str(existing.id)},
            )
            raise RegisterAlreadyOpenError(str(existing.id))

        register_session = RegisterSession(
            opened_at=self._clock.now_utc(),
            opening_amount=opening_amount.amount,
            opening_details=opening_details,
            status=SessionStatus.OPEN,
        )
        self.session.add(register_session)

        try:
            self.session.flush()
        except IntegrityError as exc:
            # Another terminal's open committed between our read and insert
            self.session.rollback()
            logger.warning("register_open_conflict", extra={"open_session_id": None})
            raise RegisterAlreadyOpenError() from exc

        with LogContext.bind(session_id=str(register_session.id)):
            logger.info(
                "register_opened",
                extra={
                    "opening_amount": str(opening_amount.amount),
                    "currency": self.currency.code,
                },
            )

        return self._to_dto(register_session)

    def close_session(
        self,
        closing_amount: Money,
        closing_details: dict[str, Any] | None = None,
    ) -> SessionSummary:
        """
        Close the open register and reconcile the drawer.

        Raises:
            NoOpenSessionError: No session is open (or another closer won).
            ValidationError: Negative or over-precise closing amount.
        """
        closing_amount = self._check_amount(closing_amount, "Closing amount")

        register_session = self._get_open_session_orm(for_update=True)
        if register_session is None:
            raise NoOpenSessionError()

        register_session.close(
            closed_at=self._clock.now_utc(),
            closing_amount=closing_amount.amount,
            closing_details=closing_details,
        )

        try:
            self.session.flush()
        except StaleDataError as exc:
            # Versioned UPDATE matched no row: a concurrent close committed first
            self.session.rollback()
            logger.warning("register_close_conflict")
            raise NoOpenSessionError() from exc

        info = self._to_dto(register_session)
        summary = self._summarize(info)

        with LogContext.bind(session_id=str(info.id)):
            logger.info(
                "register_closed",
                extra={
                    "opening_amount": str(summary.opening_amount.amount),
                    "closing_amount": str(summary.closing_amount.amount),
                    "takeout": str(summary.takeout.amount),
                    "session_sales": str(summary.session_sales.amount),
                    "over_short": str(summary.over_short.amount),
                },
            )

        return summary

    def _summarize(self, info: RegisterSessionInfo) -> SessionSummary:
        opening = info.opening_amount
        closing = info.closing_amount
        session_sales = self._sales.sales_for_window(info.opened_at, info.closed_at)
        cash_sales = self._sales.sales_for_window(
            info.opened_at, info.closed_at, method=PaymentMethod.CASH
        )
        expected_cash = opening + cash_sales
        return SessionSummary(
            session=info,
            opening_amount=opening,
            closing_amount=closing,
            takeout=closing - opening,
            session_sales=session_sales,
            cash_sales=cash_sales,
            expected_cash=expected_cash,
            over_short=closing - expected_cash,
        )

    # =========================================================================
    # Queries
    # =========================================================================

    def current_session(self) -> CurrentSession | None:
        """The open session with its running sales total, or None."""
        register_session = self._get_open_session_orm()
        if register_session is None:
            return None
        return CurrentSession(
            session=self._to_dto(register_session),
            sales=self._sales.sales_since(register_session.opened_at),
        )

    def status(self) -> RegisterStatus:
        """
        Is the register open?

        A storage failure is reported as closed rather than raised: the
        probe is advisory and opening or selling re-checks authoritatively.
        """
        try:
            open_id = self.session.execute(
                select(RegisterSession.id).where(
                    RegisterSession.status == SessionStatus.OPEN.value
                )
            ).scalars().first()
        except SQLAlchemyError:
            logger.warning("register_status_degraded", exc_info=True)
            return RegisterStatus(is_open=False)
        return RegisterStatus(is_open=open_id is not None, session_id=open_id)

    def get_session(self, session_id: UUID | str) -> RegisterSessionInfo:
        """
        Look up one session by id.

        Raises:
            SessionNotFoundError: Unknown id.
        """
        try:
            key = session_id if isinstance(session_id, UUID) else UUID(str(session_id))
        except ValueError as exc:
            raise SessionNotFoundError(str(session_id)) from exc
        register_session = self.session.get(RegisterSession, key)
        if register_session is None:
            raise SessionNotFoundError(str(session_id))
        return self._to_dto(register_session)

    def list_sessions(
        self,
        start: Bound = None,
        end: Bound = None,
    ) -> list[RegisterSessionInfo]:
        """
        Sessions whose opened_at falls in ``[start, end]``, newest first.

        A date-only end covers that whole day.
        """
        stmt = select(RegisterSession)
        lower = normalize_start(start)
        upper = normalize_end(end)
        if lower is not None:
            stmt = stmt.where(RegisterSession.opened_at >= lower)
        if upper is not None:
            stmt = stmt.where(RegisterSession.opened_at <= upper)
        stmt = stmt.order_by(RegisterSession.opened_at.desc())
        return [self._to_dto(row) for row in self.session.execute(stmt).scalars()]

    # =========================================================================
    # Internal
    # =========================================================================

    def _get_open_session_orm(self, for_update: bool = False) -> RegisterSession | None:
        stmt = select(RegisterSession).where(
            RegisterSession.status == SessionStatus.OPEN.value
        )
        if for_update:
            stmt = stmt.with_for_update()
        return self.session.execute(stmt).scalars().first()
