"""
Pure domain layer.

Value objects, DTOs and register arithmetic with NO dependencies on
the ORM, the database, or I/O (SystemClock aside).
"""

from pos_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from pos_kernel.domain.currency import CurrencyInfo, CurrencyRegistry
from pos_kernel.domain.denominations import (
    CashCount,
    DenominationLadder,
    fill_greedy,
    is_canonical,
    total_of,
)
from pos_kernel.domain.dtos import (
    CartLine,
    CurrentSession,
    PaymentMethod,
    RegisterSessionInfo,
    RegisterStatus,
    SaleTotals,
    SessionState,
    SessionSummary,
    TransactionRecord,
)
from pos_kernel.domain.sale_computation import compute_change, compute_totals
from pos_kernel.domain.values import Currency, Money

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "CurrencyInfo",
    "CurrencyRegistry",
    "Currency",
    "Money",
    "CashCount",
    "DenominationLadder",
    "fill_greedy",
    "is_canonical",
    "total_of",
    "CartLine",
    "CurrentSession",
    "PaymentMethod",
    "RegisterSessionInfo",
    "RegisterStatus",
    "SaleTotals",
    "SessionState",
    "SessionSummary",
    "TransactionRecord",
    "compute_change",
    "compute_totals",
]
