"""
Module: harvest_kernel.selectors.batch_selector
Responsibility: Read-only access to batches of every stage -- listings with
    unit aggregates, single-batch detail, the downstream batch of a batch,
    and the completed batches still waiting for derivation.
Architecture position: Kernel > Selectors.

Failure modes:
    - BatchNotFoundError from ``get_*`` for a missing or malformed id.
"""

from collections import defaultdict
from decimal import Decimal
from uuid import UUID

from sqlalchemy import exists, func, select

from harvest_kernel.domain.dtos import (
    DerivedBatchView,
    EligibleSourceView,
    ProcessingBatchView,
)
from harvest_kernel.domain.ids import parse_batch_id
from harvest_kernel.domain.lifecycle import BatchStatus
from harvest_kernel.domain.product_lines import (
    ProductLine,
    Stage,
    normalize_product_line,
)
from harvest_kernel.exceptions import BatchNotFoundError, ValidationError
from harvest_kernel.models.processing_batch import ProcessingBatch
from harvest_kernel.models.raw_unit import BatchUnitAssignment, RawUnit
from harvest_kernel.models.registry import model_for
from harvest_kernel.selectors.base import BaseSelector


class BatchSelector(BaseSelector):
    """
    Selector for batch queries.

    Processing batches come back as ``ProcessingBatchView`` (with unit codes
    and total unit quantity); packaging and labeling batches as
    ``DerivedBatchView``.
    """

    # =========================================================================
    # Processing
    # =========================================================================

    def list_processing(
        self,
        product_line: ProductLine | str | None = None,
        status: BatchStatus | str | None = None,
    ) -> list[ProcessingBatchView]:
        stmt = select(ProcessingBatch)
        if product_line is not None:
            stmt = stmt.where(
                ProcessingBatch.product_line == normalize_product_line(product_line).value
            )
        if status is not None:
            stmt = stmt.where(ProcessingBatch.status == BatchStatus(status).value)
        stmt = stmt.order_by(
            ProcessingBatch.scheduled_date.desc(),
            *_newest_number_first(ProcessingBatch.batch_number),
        )
        batches = list(self.session.execute(stmt).scalars())
        units = self._units_by_batch([b.id for b in batches])
        return [ProcessingBatchView.from_model(b, units.get(b.id, ())) for b in batches]

    def get_processing(self, batch_id: object) -> ProcessingBatchView:
        batch_uuid = parse_batch_id(Stage.PROCESSING.value, batch_id)
        batch = self.session.execute(
            select(ProcessingBatch)
            .where(ProcessingBatch.id == batch_uuid)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if batch is None:
            raise BatchNotFoundError(Stage.PROCESSING.value, str(batch_id))
        units = self._units_by_batch([batch.id])
        return ProcessingBatchView.from_model(batch, units.get(batch.id, ()))

    def _units_by_batch(self, batch_ids: list[UUID]) -> dict[UUID, list[RawUnit]]:
        if not batch_ids:
            return {}
        rows = self.session.execute(
            select(BatchUnitAssignment.processing_batch_id, RawUnit)
            .join(RawUnit, RawUnit.id == BatchUnitAssignment.raw_unit_id)
            .where(BatchUnitAssignment.processing_batch_id.in_(batch_ids))
        ).unique().all()
        grouped: dict[UUID, list[RawUnit]] = defaultdict(list)
        for batch_id, unit in rows:
            grouped[batch_id].append(unit)
        return grouped

    # =========================================================================
    # Packaging / labeling
    # =========================================================================

    def list_derived(
        self,
        stage: Stage,
        product_line: ProductLine | str | None = None,
        status: BatchStatus | str | None = None,
    ) -> list[DerivedBatchView]:
        stage = _downstream_stage(stage)
        model = model_for(stage)
        source = model_for(stage.upstream)
        stmt = select(model, source.batch_number).join(
            source, source.id == model.source_batch_id
        )
        if product_line is not None:
            stmt = stmt.where(
                model.product_line == normalize_product_line(product_line).value
            )
        if status is not None:
            stmt = stmt.where(model.status == BatchStatus(status).value)
        stmt = stmt.order_by(model.started_at.desc(), *_newest_number_first(model.batch_number))
        return [
            DerivedBatchView.from_model(stage, batch, source_number)
            for batch, source_number in self.session.execute(stmt).all()
        ]

    def get_derived(self, stage: Stage, batch_id: object) -> DerivedBatchView:
        stage = _downstream_stage(stage)
        model = model_for(stage)
        source = model_for(stage.upstream)
        batch_uuid = parse_batch_id(stage.value, batch_id)
        row = self.session.execute(
            select(model, source.batch_number)
            .join(source, source.id == model.source_batch_id)
            .where(model.id == batch_uuid)
            .execution_options(populate_existing=True)
        ).first()
        if row is None:
            raise BatchNotFoundError(stage.value, str(batch_id))
        batch, source_number = row
        return DerivedBatchView.from_model(stage, batch, source_number)

    def get(self, stage: Stage, batch_id: object) -> ProcessingBatchView | DerivedBatchView:
        if Stage(stage) is Stage.PROCESSING:
            return self.get_processing(batch_id)
        return self.get_derived(stage, batch_id)

    def downstream_of(self, stage: Stage, batch_id: UUID) -> DerivedBatchView | None:
        """The batch derived from ``batch_id``, if any."""
        target = Stage(stage).downstream
        if target is None:
            return None
        model = model_for(target)
        derived_id = self.session.execute(
            select(model.id).where(model.source_batch_id == batch_id)
        ).scalar_one_or_none()
        if derived_id is None:
            return None
        return self.get_derived(target, derived_id)

    # =========================================================================
    # Derivation sources
    # =========================================================================

    def eligible_sources(
        self,
        downstream_stage: Stage,
        product_line: ProductLine | str | None = None,
    ) -> list[EligibleSourceView]:
        """
        Completed upstream batches with no downstream batch yet.

        ``downstream_stage`` is the stage that would be created (packaging
        lists processing batches, labeling lists packaging batches).
        """
        stage = _downstream_stage(downstream_stage)
        upstream = stage.upstream
        source = model_for(upstream)
        derived = model_for(stage)

        stmt = select(source).where(
            source.status == BatchStatus.COMPLETED.value,
            ~exists().where(derived.source_batch_id == source.id),
        )
        if product_line is not None:
            stmt = stmt.where(
                source.product_line == normalize_product_line(product_line).value
            )
        stmt = stmt.order_by(
            source.updated_at.desc(), *_newest_number_first(source.batch_number)
        )

        output_field = "total_output" if upstream is Stage.PROCESSING else "finished_quantity"
        views = []
        for batch in self.session.execute(stmt).scalars():
            output: Decimal | None = getattr(batch, output_field)
            views.append(
                EligibleSourceView(
                    id=batch.id,
                    stage=upstream,
                    batch_number=batch.batch_number,
                    product_line=ProductLine(batch.product_line),
                    completed_at=batch.updated_at,
                    output_quantity=output,
                )
            )
        return views


def _downstream_stage(stage: Stage | str) -> Stage:
    stage = Stage(stage)
    if stage.upstream is None:
        raise ValidationError(
            f"{stage.value} batches are not derived from another stage",
            field="stage",
        )
    return stage


def _newest_number_first(column) -> tuple:
    """Batch numbers are decimal strings: the longer one is the larger."""
    return func.length(column).desc(), column.desc()
