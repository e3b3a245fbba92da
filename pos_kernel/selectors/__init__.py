"""Read-only selectors over the register ledger."""

from pos_kernel.selectors.base import BaseSelector
from pos_kernel.selectors.sales_selector import SalesSelector

__all__ = ["BaseSelector", "SalesSelector"]
