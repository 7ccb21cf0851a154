"""Write-side services of the harvest kernel."""

from harvest_kernel.services.assignment_service import AssignmentService
from harvest_kernel.services.base import BaseService
from harvest_kernel.services.batch_numbering import BatchNumberingService
from harvest_kernel.services.pipeline_linker import PipelineLinker
from harvest_kernel.services.stage_service import StageService
from harvest_kernel.services.unit_ledger import UnitLedger

__all__ = [
    "AssignmentService",
    "BaseService",
    "BatchNumberingService",
    "PipelineLinker",
    "StageService",
    "UnitLedger",
]
