"""
Module: pos_kernel.models.register_session
Responsibility: ORM persistence for the register session lifecycle -- the
    period between counting the drawer in and counting it out.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - At most one row has status = 'open'.  Enforced by the partial unique
      index uq_register_sessions_single_open, so two concurrent opens can
      never both commit.
    - Closed is terminal.  The version column makes the close a compare-and-
      set: a second closer's UPDATE matches no row.
    - Opening fields are written once (see db/immutability.py).

Failure modes:
    - IntegrityError on INSERT while another session is open (translated to
      RegisterAlreadyOpenError by RegisterSessionService).
    - StaleDataError on a close that lost the race (translated to
      NoOpenSessionError).
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from sqlalchemy import JSON, Index, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column

from pos_kernel.db.base import TrackedBase


class SessionStatus(str, Enum):
    """Lifecycle status of a register session.

    Contract: OPEN -> CLOSED, and nothing else.
    """

    OPEN = "open"
    CLOSED = "closed"


class RegisterSession(TrackedBase):
    """
    One open/close cycle of the cash register.

    Guarantees:
        - opened_at and opening_amount never change after INSERT.
        - closed_at, closing_amount and closing_details are set together,
          exactly once, by close().

    Non-goals:
        - Does NOT compute sales; SalesSelector derives them from
          transactions dated on or after opened_at.
    """

    __tablename__ = "register_sessions"

    __table_args__ = (
        Index(
            "uq_register_sessions_single_open",
            "status",
            unique=True,
            sqlite_where=text("status = 'open'"),
            postgresql_where=text("status = 'open'"),
        ),
        Index("idx_register_sessions_opened_at", "opened_at"),
    )

    opened_at: Mapped[datetime] = mapped_column(nullable=False)

    closed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    opening_amount: Mapped[Decimal] = mapped_column(nullable=False)

    closing_amount: Mapped[Decimal | None] = mapped_column(nullable=True)

    # Denomination breakdowns, stored for audit
    opening_details: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    closing_details: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    status: Mapped[SessionStatus] = mapped_column(
        String(20),
        default=SessionStatus.OPEN,
        nullable=False,
    )

    # Optimistic lock counter; bumped by the ORM on every UPDATE
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<RegisterSession {self.id}: {SessionStatus(self.status).value}>"

    @property
    def is_open(self) -> bool:
        return SessionStatus(self.status) == SessionStatus.OPEN

    def close(
        self,
        closed_at: datetime,
        closing_amount: Decimal,
        closing_details: dict[str, Any] | None,
    ) -> None:
        """Close the session.

        Preconditions: Session is OPEN.
        Raises: ValueError if the session is already closed.

        Note: closed_at comes from the injected clock.
        """
        if not self.is_open:
            raise ValueError(f"Register session {self.id} is already closed")

        self.status = SessionStatus.CLOSED
        self.closed_at = closed_at
        self.closing_amount = closing_amount
        self.closing_details = closing_details
