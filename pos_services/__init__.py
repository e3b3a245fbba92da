"""
pos_services -- orchestration layer over pos_kernel.

PointOfSaleService owns transaction boundaries and composes the kernel
services; the ``pos-register`` CLI is a thin shell over it.
"""

from pos_services.point_of_sale import PointOfSaleService
from pos_services.settings import (
    REGISTER_INITIAL_AMOUNT_KEY,
    TAX_RATE_KEY,
    SettingsStore,
    SqlSettingsStore,
    StaticSettingsStore,
)

__all__ = [
    "PointOfSaleService",
    "REGISTER_INITIAL_AMOUNT_KEY",
    "TAX_RATE_KEY",
    "SettingsStore",
    "SqlSettingsStore",
    "StaticSettingsStore",
]
