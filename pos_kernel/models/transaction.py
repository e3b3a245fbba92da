"""
Module: pos_kernel.models.transaction
Responsibility: ORM persistence for recorded sales -- the register's
    append-only ledger.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Append-only: UPDATE and DELETE are rejected by db/immutability.py.
    - items holds the cart exactly as sold (unit_price as a decimal string),
      independent of later catalog changes.

Receipt numbers are not unique: a caller may supply its own, and the
ledger records it as given.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import JSON, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from pos_kernel.db.base import TrackedBase


class Transaction(TrackedBase):
    """A completed sale."""

    __tablename__ = "transactions"

    __table_args__ = (
        Index("idx_transactions_date", "date"),
        Index("idx_transactions_method_date", "method", "date"),
    )

    receipt_number: Mapped[str] = mapped_column(String(64), nullable=False)

    date: Mapped[datetime] = mapped_column(nullable=False)

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    subtotal: Mapped[Decimal] = mapped_column(nullable=False)

    tax: Mapped[Decimal] = mapped_column(nullable=False)

    total: Mapped[Decimal] = mapped_column(nullable=False)

    # "cash" or "card"
    method: Mapped[str] = mapped_column(String(10), nullable=False)

    tendered_amount: Mapped[Decimal] = mapped_column(nullable=False)

    change_due: Mapped[Decimal] = mapped_column(nullable=False)

    items: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False)

    def __repr__(self) -> str:
        return f"<Transaction {self.receipt_number}: {self.total} {self.method}>"
