"""ORM models for the harvest kernel."""

from harvest_kernel.models.batch_number_lock import BatchNumberLock
from harvest_kernel.models.collection_draft import CollectionDraft, DraftStatus
from harvest_kernel.models.labeling_batch import LabelingBatch
from harvest_kernel.models.packaging_batch import PackagingBatch
from harvest_kernel.models.processing_batch import MEASUREMENT_FIELDS, ProcessingBatch
from harvest_kernel.models.raw_unit import BatchUnitAssignment, RawUnit
from harvest_kernel.models.registry import STAGE_MODELS, model_for

__all__ = [
    "BatchNumberLock",
    "BatchUnitAssignment",
    "CollectionDraft",
    "DraftStatus",
    "LabelingBatch",
    "MEASUREMENT_FIELDS",
    "PackagingBatch",
    "ProcessingBatch",
    "RawUnit",
    "STAGE_MODELS",
    "model_for",
]
