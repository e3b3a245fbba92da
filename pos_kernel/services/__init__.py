"""Kernel services -- flush-only writers over the register tables."""

from pos_kernel.services.base import BaseService
from pos_kernel.services.register_session_service import RegisterSessionService
from pos_kernel.services.transaction_ledger import TransactionLedger

__all__ = ["BaseService", "RegisterSessionService", "TransactionLedger"]
