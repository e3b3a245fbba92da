"""
Configuration Loader (``pos_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into the frozen
``pos_config.schema`` dataclasses.  The single public entry point for
runtime config is ``pos_config.get_active_config()``.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages.
* Every parsed object is a frozen dataclass from ``schema.py``.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the parsed
  content for configuration identity.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown currency, unordered ladder, bad pool size  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import replace
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from pos_config.schema import (
    DatabaseConfig,
    LoggingConfig,
    PosConfig,
    ReceiptConfig,
    RegisterConfig,
    StoreConfig,
)
from pos_kernel.domain.currency import CurrencyRegistry

_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Configuration root must be a mapping: {path}")
    return data


def parse_decimal(value: Any) -> Decimal:
    """
    Parse a decimal from YAML (int, float, or string).

    Floats go through ``str`` so ``0.1`` stays 0.1.

    Raises:
        ValueError: if ``value`` is not a finite number.
    """
    if isinstance(value, bool):
        raise ValueError(f"Cannot parse decimal from {value!r}")
    try:
        result = Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"Cannot parse decimal from {value!r}") from exc
    if not result.is_finite():
        raise ValueError(f"Cannot parse decimal from {value!r}")
    return result


def parse_ladder(name: str, values: Any) -> tuple[Decimal, ...]:
    """Parse a strictly descending list of positive face values."""
    if not isinstance(values, list) or not values:
        raise ValueError(f"register.{name} must be a non-empty list")
    faces = tuple(parse_decimal(v) for v in values)
    if any(face <= 0 for face in faces):
        raise ValueError(f"register.{name} face values must be positive")
    if any(a <= b for a, b in zip(faces, faces[1:])):
        raise ValueError(f"register.{name} must be strictly descending: {values!r}")
    return faces


def parse_store(data: dict[str, Any]) -> StoreConfig:
    currency = CurrencyRegistry.validate(data.get("currency", "USD"))
    return StoreConfig(currency=currency, name=str(data.get("name", "")))


def parse_database(data: dict[str, Any]) -> DatabaseConfig:
    pool_size = int(data.get("pool_size", 5))
    max_overflow = int(data.get("max_overflow", 10))
    if pool_size < 1:
        raise ValueError(f"database.pool_size must be positive, got {pool_size}")
    if max_overflow < 0:
        raise ValueError(f"database.max_overflow must not be negative, got {max_overflow}")
    return DatabaseConfig(
        url=data["url"],
        echo=bool(data.get("echo", False)),
        pool_size=pool_size,
        max_overflow=max_overflow,
    )


def parse_register(data: dict[str, Any]) -> RegisterConfig:
    return RegisterConfig(
        bills=parse_ladder("bills", data["bills"]),
        coins=parse_ladder("coins", data["coins"]),
    )


def parse_logging(data: dict[str, Any]) -> LoggingConfig:
    level = str(data.get("level", "INFO")).upper()
    if level not in _LOG_LEVELS:
        raise ValueError(f"logging.level must be one of {sorted(_LOG_LEVELS)}, got {level!r}")
    return LoggingConfig(level=level)


def parse_config(data: dict[str, Any], source: str = "") -> PosConfig:
    """
    Parse a whole configuration document.

    Raises:
        KeyError: if a required key (database.url, register.bills,
            register.coins) is missing.
        ValueError: on invalid values.
    """
    config = PosConfig(
        store=parse_store(data.get("store") or {}),
        database=parse_database(data["database"]),
        register=parse_register(data["register"]),
        receipts=ReceiptConfig(prefix=str((data.get("receipts") or {}).get("prefix", "REC-"))),
        logging=parse_logging(data.get("logging") or {}),
        source=source,
    )
    return replace(config, checksum=compute_checksum(config))


def compute_checksum(config: PosConfig) -> str:
    """Deterministic SHA-256 over the parsed content (source path excluded)."""
    canonical = {
        "store": {"currency": config.store.currency, "name": config.store.name},
        "database": {
            "url": config.database.url,
            "echo": config.database.echo,
            "pool_size": config.database.pool_size,
            "max_overflow": config.database.max_overflow,
        },
        "register": {
            "bills": [str(v) for v in config.register.bills],
            "coins": [str(v) for v in config.register.coins],
        },
        "receipts": {"prefix": config.receipts.prefix},
        "logging": {"level": config.logging.level},
    }
    payload = json.dumps(canonical, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(payload.encode()).hexdigest()
