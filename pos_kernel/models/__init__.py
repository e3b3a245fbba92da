"""ORM models for the POS kernel."""

from pos_kernel.models.register_session import RegisterSession, SessionStatus
from pos_kernel.models.setting import Setting
from pos_kernel.models.transaction import Transaction

__all__ = [
    "RegisterSession",
    "SessionStatus",
    "Setting",
    "Transaction",
]
