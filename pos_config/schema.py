"""
Register configuration schema.

The human-authored YAML is parsed by the loader into these frozen types.
Nothing else in the system reads YAML.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StoreConfig:
    """Store-wide settings."""

    currency: str = "USD"
    name: str = ""


@dataclass(frozen=True)
class DatabaseConfig:
    """Connection settings for pos_kernel.db.engine."""

    url: str = "sqlite:///pos.db"
    echo: bool = False
    pool_size: int = 5
    max_overflow: int = 10


@dataclass(frozen=True)
class RegisterConfig:
    """The denomination ladder the drawer holds."""

    bills: tuple[Decimal, ...] = ()
    coins: tuple[Decimal, ...] = ()


@dataclass(frozen=True)
class ReceiptConfig:
    prefix: str = "REC-"


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PosConfig:
    """Complete register configuration, as loaded from one YAML file."""

    store: StoreConfig = field(default_factory=StoreConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    register: RegisterConfig = field(default_factory=RegisterConfig)
    receipts: ReceiptConfig = field(default_factory=ReceiptConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    source: str = ""
    checksum: str = ""
