"""
Module: pos_kernel.selectors.sales_selector
Responsibility: Read-only sales queries -- running totals since a session
    opened, sales in a date range, and the sales attributable to a session.
Architecture position: Kernel > Selectors.  May import from models/,
    selectors/base.py and domain value types.

Invariants enforced:
    - No stored totals.  Every figure is a SUM over transactions at query
      time, so a session's sales can never drift from the ledger.
    - Ranges are inclusive at both ends.  A date-only end bound means "the
      whole of that day" (23:59:59.999999); a date-only start means 00:00.
    - Listings are ordered by sale date, newest first.

Failure modes:
    - SessionNotFoundError from session_sales() for an unknown session id.
"""

from datetime import date, datetime, time, timezone
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from pos_kernel.domain.dtos import PaymentMethod, TransactionRecord
from pos_kernel.domain.values import Currency, Money
from pos_kernel.exceptions import SessionNotFoundError
from pos_kernel.models.register_session import RegisterSession
from pos_kernel.models.transaction import Transaction
from pos_kernel.selectors.base import BaseSelector

Bound = date | datetime | None


def as_utc(value: datetime) -> datetime:
    """Aware UTC datetime; naive values are taken to already be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def normalize_start(start: Bound) -> datetime | None:
    """Date-only start -> that day at 00:00 UTC."""
    if start is None:
        return None
    if not isinstance(start, datetime):
        return datetime.combine(start, time.min, tzinfo=timezone.utc)
    return as_utc(start)


def normalize_end(end: Bound) -> datetime | None:
    """Date-only end -> that day at 23:59:59.999999 UTC."""
    if end is None:
        return None
    if not isinstance(end, datetime):
        return datetime.combine(end, time.max, tzinfo=timezone.utc)
    return as_utc(end)


class SalesSelector(BaseSelector[Transaction]):
    """
    Derived sales views over the transaction ledger.

    Contract:
        Pure reads.  All amounts are returned as Money in the selector's
        currency, rounded to its minor unit.
    """

    def __init__(self, session: Session, currency: Currency | str = "USD"):
        super().__init__(session)
        self.currency = Currency(currency) if isinstance(currency, str) else currency

    def _money(self, amount) -> Money:
        value = Decimal(str(amount)) if amount is not None else Decimal("0")
        return Money(value, self.currency).round()

    def _sum_total(self, *criteria) -> Money:
        stmt = select(func.coalesce(func.sum(Transaction.total), 0)).where(*criteria)
        return self._money(self.session.execute(stmt).scalar_one())

    def sales_since(self, timestamp: datetime) -> Money:
        """Sum of sale totals dated at or after ``timestamp``."""
        return self._sum_total(Transaction.date >= as_utc(timestamp))

    def sales_between(
        self,
        start: Bound,
        end: Bound,
        method: PaymentMethod | str | None = None,
    ) -> Money:
        """Sum of sale totals in ``[start, end]``, optionally for one tender method."""
        criteria = self._range_criteria(start, end)
        if method is not None:
            criteria.append(Transaction.method == PaymentMethod(method).value)
        return self._sum_total(*criteria)

    def sales_in_range(
        self,
        start: Bound = None,
        end: Bound = None,
    ) -> list[TransactionRecord]:
        """
        Transactions dated within ``[start, end]``, newest first.

        Either bound may be omitted; with neither, every transaction is
        returned.
        """
        stmt = (
            select(Transaction)
            .where(*self._range_criteria(start, end))
            .order_by(Transaction.date.desc(), Transaction.created_at.desc())
        )
        rows = self.session.execute(stmt).scalars().all()
        return [TransactionRecord.from_model(row, self.currency) for row in rows]

    def session_sales(self, session_id: UUID) -> Money:
        """
        Sales attributable to a register session.

        An open session counts everything since it opened.  A closed
        session is bounded by its close time, so sales recorded after the
        close never leak into it.

        Raises:
            SessionNotFoundError: No session with this id.
        """
        try:
            key = session_id if isinstance(session_id, UUID) else UUID(str(session_id))
        except ValueError as exc:
            raise SessionNotFoundError(str(session_id)) from exc
        register_session = self.session.get(RegisterSession, key)
        if register_session is None:
            raise SessionNotFoundError(str(session_id))
        return self.sales_for_window(register_session.opened_at, register_session.closed_at)

    def sales_for_window(
        self,
        opened_at: datetime,
        closed_at: datetime | None,
        method: PaymentMethod | str | None = None,
    ) -> Money:
        """Sales in ``[opened_at, closed_at]``; unbounded above while open."""
        if closed_at is None and method is None:
            return self.sales_since(opened_at)
        return self.sales_between(opened_at, closed_at, method=method)

    def _range_criteria(self, start: Bound, end: Bound) -> list:
        criteria = []
        lower = normalize_start(start)
        upper = normalize_end(end)
        if lower is not None:
            criteria.append(Transaction.date >= lower)
        if upper is not None:
            criteria.append(Transaction.date <= upper)
        return criteria
