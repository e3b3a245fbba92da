"""
pos_services.settings -- read-only store settings.

Responsibility:
    Looks up the store settings the register needs (tax rate, default
    opening float) through a narrow key/value interface.  Editing settings
    is store administration and happens elsewhere.

Failure modes:
    - InvalidSettingError when a stored value is not a number.  Missing or
      blank values are not errors; they read as zero.
"""

from __future__ import annotations

from collections.abc import Mapping
from decimal import Decimal, InvalidOperation
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from pos_kernel.exceptions import InvalidSettingError
from pos_kernel.models.setting import Setting

TAX_RATE_KEY = "tax_rate"
REGISTER_INITIAL_AMOUNT_KEY = "register_initial_amount"


class SettingsStore(Protocol):
    """Key/value lookup. Returns None for unknown keys."""

    def get(self, key: str) -> str | None: ...


class StaticSettingsStore:
    """Settings held in memory (tests, CLI overrides)."""

    def __init__(self, values: Mapping[str, str | None] | None = None):
        self._values = dict(values or {})

    def get(self, key: str) -> str | None:
        value = self._values.get(key)
        return None if value is None else str(value)


class SqlSettingsStore:
    """Settings read from the ``settings`` table in the caller's session."""

    def __init__(self, session: Session):
        self.session = session

    def get(self, key: str) -> str | None:
        return self.session.execute(
            select(Setting.value).where(Setting.key == key)
        ).scalar_one_or_none()


def read_decimal(store: SettingsStore, key: str) -> Decimal:
    """
    Read a numeric setting.  Missing or blank reads as 0.

    Raises:
        InvalidSettingError: The stored value is not a finite, non-negative number.
    """
    raw = store.get(key)
    if raw is None or not str(raw).strip():
        return Decimal("0")
    try:
        value = Decimal(str(raw).strip())
    except InvalidOperation as exc:
        raise InvalidSettingError(key, str(raw)) from exc
    if not value.is_finite() or value < 0:
        raise InvalidSettingError(key, str(raw))
    return value


def tax_rate_percent(store: SettingsStore) -> Decimal:
    """Sales tax as a percentage (8.25 means 8.25%)."""
    return read_decimal(store, TAX_RATE_KEY)


def register_initial_amount(store: SettingsStore) -> Decimal:
    """Default opening float."""
    return read_decimal(store, REGISTER_INITIAL_AMOUNT_KEY)
