"""
pos_config -- single public entrypoint for register configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration
    files or environment variables directly.

Architecture position:
    Configuration.  Sits above ``pos_kernel`` and below ``pos_services``.
    The kernel MUST NEVER import from ``pos_config``.

Invariants enforced:
    - Single entrypoint: all runtime config flows through get_active_config().
    - The denomination ladder is checked for canonicality on load; a
      non-canonical ladder still loads but logs a warning, because greedy
      pre-fill is then no longer guaranteed to be optimal.

Failure modes:
    - FileNotFoundError -- the selected YAML file does not exist.
    - ValueError / KeyError -- invalid or incomplete configuration.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from pos_config.loader import load_yaml_file, parse_config
from pos_config.schema import PosConfig
from pos_kernel.domain.denominations import is_canonical
from pos_kernel.domain.values import Currency

_logger = logging.getLogger("pos_kernel.config")

# Default configuration sets directory
_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"
DEFAULT_CONFIG_PATH = _DEFAULT_CONFIG_DIR / "default.yaml"

CONFIG_PATH_ENV = "POS_CONFIG_PATH"
DATABASE_URL_ENV = "POS_DATABASE_URL"


def get_active_config(path: Path | str | None = None) -> PosConfig:
    """The ONLY public configuration entrypoint.

    Resolution order for the file: explicit ``path``, then the
    ``POS_CONFIG_PATH`` environment variable, then the packaged default.
    ``POS_DATABASE_URL``, when set, overrides ``database.url``.

    Raises:
        FileNotFoundError: If the configuration file does not exist.
        ValueError: If configuration validation fails.
        KeyError: If a required key is missing.
    """
    config_path = Path(path or os.environ.get(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH)
    data = load_yaml_file(config_path)

    url_override = os.environ.get(DATABASE_URL_ENV)
    if url_override:
        data = dict(data)
        data["database"] = {**(data.get("database") or {}), "url": url_override}

    config = parse_config(data, source=str(config_path))

    currency = Currency(config.store.currency)
    faces = sorted(set(config.register.bills) | set(config.register.coins), reverse=True)
    canonical = is_canonical(faces, currency)
    if not canonical:
        _logger.warning(
            "denomination_ladder_not_canonical",
            extra={
                "bills": [str(v) for v in config.register.bills],
                "coins": [str(v) for v in config.register.coins],
                "currency": currency.code,
            },
        )

    _logger.info(
        "config_loaded",
        extra={
            "source": config.source,
            "checksum": config.checksum,
            "currency": config.store.currency,
            "ladder_canonical": canonical,
        },
    )
    return config


__all__ = ["PosConfig", "get_active_config", "DEFAULT_CONFIG_PATH"]
