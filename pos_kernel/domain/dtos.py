"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Defines the immutable data structures that cross the service boundary:
    CartLine (sale input and item snapshot), SaleTotals (computed sale),
    TransactionRecord (persisted sale), RegisterSessionInfo, SessionSummary,
    CurrentSession and RegisterStatus.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Free of ORM dependencies.  from_model() class methods exist as boundary
    converters but are only invoked from the service and selector layers.

Invariants enforced:
    - Money value objects for all monetary fields (never raw Decimal).
    - Item snapshots carry unit_price as a decimal string so that a
      re-fetched transaction shows exactly what was submitted.

Data flow:
    list[CartLine] -> SaleTotals -> TransactionRecord
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import TYPE_CHECKING, Any
from uuid import UUID

from pos_kernel.domain.values import Currency, Money

if TYPE_CHECKING:
    from pos_kernel.models.register_session import RegisterSession as RegisterSessionModel
    from pos_kernel.models.transaction import Transaction as TransactionModel


class PaymentMethod(str, Enum):
    """How a sale was tendered."""

    CASH = "cash"
    CARD = "card"


class SessionState(str, Enum):
    """Register session lifecycle state (Open -> Closed, terminal)."""

    OPEN = "open"
    CLOSED = "closed"


def _parse_quantity(raw: Any) -> int:
    if isinstance(raw, bool):
        raise ValueError(f"quantity must be an integer, got {raw!r}")
    try:
        value = Decimal(str(raw).strip())
    except InvalidOperation as exc:
        raise ValueError(f"quantity must be an integer, got {raw!r}") from exc
    if not value.is_finite() or value != value.to_integral_value():
        raise ValueError(f"quantity must be an integer, got {raw!r}")
    return int(value)


@dataclass(frozen=True)
class CartLine:
    """
    One line of a cart, and the snapshot stored with the sale.

    Contract:
        ``unit_price`` is the price charged at the moment of sale; later
        catalog edits never reach a recorded transaction.
    """

    name: str
    unit_price: Decimal
    quantity: int
    product_id: str | None = None

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity

    def to_snapshot(self) -> dict[str, Any]:
        """JSON-ready snapshot for the transaction's items column."""
        return {
            "product_id": self.product_id,
            "name": self.name,
            "unit_price": str(self.unit_price),
            "quantity": self.quantity,
        }

    @classmethod
    def from_snapshot(cls, data: dict[str, Any]) -> CartLine:
        return cls(
            product_id=data.get("product_id"),
            name=data["name"],
            unit_price=Decimal(data["unit_price"]),
            quantity=int(data["quantity"]),
        )

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> CartLine:
        """
        Build a line from loosely typed input (CLI, JSON payloads).

        Accepts ``price`` as an alias for ``unit_price`` and ``id`` for
        ``product_id``.  Floats are converted through ``str`` so 10.1 stays
        10.1.

        Raises:
            ValueError: On missing fields or unparsable values.
        """
        raw_price = data.get("unit_price", data.get("price"))
        if raw_price is None:
            raise ValueError("cart line is missing unit_price")
        try:
            price = Decimal(str(raw_price))
        except InvalidOperation as exc:
            raise ValueError(f"unparsable unit_price {raw_price!r}") from exc
        product_id = data.get("product_id", data.get("id"))
        return cls(
            name=str(data.get("name", "")),
            unit_price=price,
            quantity=_parse_quantity(data.get("quantity", 1)),
            product_id=str(product_id) if product_id is not None else None,
        )


@dataclass(frozen=True)
class SaleTotals:
    """Output of sale computation: what the customer owes."""

    subtotal: Money
    tax: Money
    total: Money
    quantity_total: int


@dataclass(frozen=True)
class TransactionRecord:
    """
    Pure domain representation of a recorded sale.

    Guarantees:
        - Immutable.
        - ``items`` preserve submission order.
    """

    id: UUID
    receipt_number: str
    date: datetime
    quantity: int
    subtotal: Money
    tax: Money
    total: Money
    method: PaymentMethod
    tendered_amount: Money
    change_due: Money
    items: tuple[CartLine, ...]

    @classmethod
    def from_model(cls, model: TransactionModel, currency: Currency) -> TransactionRecord:
        return cls(
            id=model.id,
            receipt_number=model.receipt_number,
            date=model.date,
            quantity=model.quantity,
            subtotal=Money(model.subtotal, currency).round(),
            tax=Money(model.tax, currency).round(),
            total=Money(model.total, currency).round(),
            method=PaymentMethod(model.method),
            tendered_amount=Money(model.tendered_amount, currency).round(),
            change_due=Money(model.change_due, currency).round(),
            items=tuple(CartLine.from_snapshot(item) for item in model.items or ()),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "receipt_number": self.receipt_number,
            "date": self.date.isoformat(),
            "quantity": self.quantity,
            "subtotal": str(self.subtotal.amount),
            "tax": str(self.tax.amount),
            "total": str(self.total.amount),
            "method": self.method.value,
            "tendered_amount": str(self.tendered_amount.amount),
            "change_due": str(self.change_due.amount),
            "currency": self.total.currency.code,
            "items": [item.to_snapshot() for item in self.items],
        }


@dataclass(frozen=True)
class RegisterSessionInfo:
    """
    Pure domain representation of a register session.

    Contract:
        Immutable snapshot of session state.  Denomination details are the
        opaque audit payload recorded at open/close.
    """

    id: UUID
    status: SessionState
    opened_at: datetime
    opening_amount: Money
    opening_details: dict[str, Any] | None = None
    closed_at: datetime | None = None
    closing_amount: Money | None = None
    closing_details: dict[str, Any] | None = None

    @property
    def is_open(self) -> bool:
        return self.status == SessionState.OPEN

    @classmethod
    def from_model(cls, model: RegisterSessionModel, currency: Currency) -> RegisterSessionInfo:
        closing = model.closing_amount
        return cls(
            id=model.id,
            status=SessionState(model.status),
            opened_at=model.opened_at,
            opening_amount=Money(model.opening_amount, currency).round(),
            opening_details=dict(model.opening_details) if model.opening_details else None,
            closed_at=model.closed_at,
            closing_amount=Money(closing, currency).round() if closing is not None else None,
            closing_details=dict(model.closing_details) if model.closing_details else None,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "status": self.status.value,
            "opened_at": self.opened_at.isoformat(),
            "opening_amount": str(self.opening_amount.amount),
            "opening_details": self.opening_details,
            "closed_at": self.closed_at.isoformat() if self.closed_at else None,
            "closing_amount": (
                str(self.closing_amount.amount) if self.closing_amount else None
            ),
            "closing_details": self.closing_details,
            "currency": self.opening_amount.currency.code,
        }


@dataclass(frozen=True)
class SessionSummary:
    """
    Reconciliation produced when a register closes.

    ``takeout`` is what the cashier removes relative to the opening float.
    ``over_short`` is positive when the drawer holds more than expected.
    """

    session: RegisterSessionInfo
    opening_amount: Money
    closing_amount: Money
    takeout: Money
    session_sales: Money
    cash_sales: Money
    expected_cash: Money
    over_short: Money

    def to_dict(self) -> dict[str, Any]:
        return {
            "session": self.session.to_dict(),
            "opening_amount": str(self.opening_amount.amount),
            "closing_amount": str(self.closing_amount.amount),
            "takeout": str(self.takeout.amount),
            "session_sales": str(self.session_sales.amount),
            "cash_sales": str(self.cash_sales.amount),
            "expected_cash": str(self.expected_cash.amount),
            "over_short": str(self.over_short.amount),
        }


@dataclass(frozen=True)
class CurrentSession:
    """The open session together with its running sales total."""

    session: RegisterSessionInfo
    sales: Money

    def to_dict(self) -> dict[str, Any]:
        return {"session": self.session.to_dict(), "sales": str(self.sales.amount)}


@dataclass(frozen=True)
class RegisterStatus:
    """Answer to "is the register open?"."""

    is_open: bool
    session_id: UUID | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_open": self.is_open,
            "session_id": str(self.session_id) if self.session_id else None,
        }
