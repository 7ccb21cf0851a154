"""
Stage -> ORM model registry.

Services and selectors look the table up here from a ``Stage`` value; table
names are never assembled from request input.
"""

from types import MappingProxyType

from harvest_kernel.domain.product_lines import Stage
from harvest_kernel.models.labeling_batch import LabelingBatch
from harvest_kernel.models.packaging_batch import PackagingBatch
from harvest_kernel.models.processing_batch import ProcessingBatch

StageBatch = ProcessingBatch | PackagingBatch | LabelingBatch
StageModel = type[ProcessingBatch] | type[PackagingBatch] | type[LabelingBatch]

STAGE_MODELS: MappingProxyType = MappingProxyType({
    Stage.PROCESSING: ProcessingBatch,
    Stage.PACKAGING: PackagingBatch,
    Stage.LABELING: LabelingBatch,
})


def model_for(stage: Stage) -> StageModel:
    return STAGE_MODELS[Stage(stage)]
