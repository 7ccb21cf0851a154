"""
Pure domain layer.

Product lines, stages, the batch lifecycle state machine and the frozen
views returned by services.  Nothing here touches the database, the clock
or any other I/O.
"""

from harvest_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from harvest_kernel.domain.dtos import (
    CascadeReport,
    ClaimResult,
    CollectionDraftView,
    DerivedBatchView,
    EligibleSourceView,
    MaterialUsage,
    ProcessingBatchView,
    RawUnitView,
)
from harvest_kernel.domain.lifecycle import (
    BatchAction,
    BatchStatus,
    TransitionResult,
)
from harvest_kernel.domain.product_lines import (
    PRODUCT_LINES,
    ProductLine,
    ProductLineProfile,
    Stage,
    normalize_product_line,
    profile_for,
)

__all__ = [
    "BatchAction",
    "BatchStatus",
    "CascadeReport",
    "ClaimResult",
    "Clock",
    "CollectionDraftView",
    "DerivedBatchView",
    "DeterministicClock",
    "EligibleSourceView",
    "MaterialUsage",
    "PRODUCT_LINES",
    "ProcessingBatchView",
    "ProductLine",
    "ProductLineProfile",
    "RawUnitView",
    "Stage",
    "SystemClock",
    "TransitionResult",
    "normalize_product_line",
    "profile_for",
]
