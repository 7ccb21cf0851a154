"""Read-only selectors for batches and raw units."""

from harvest_kernel.selectors.base import BaseSelector
from harvest_kernel.selectors.batch_selector import BatchSelector
from harvest_kernel.selectors.unit_selector import UnitFilters, UnitSelector

__all__ = [
    "BaseSelector",
    "BatchSelector",
    "UnitFilters",
    "UnitSelector",
]
