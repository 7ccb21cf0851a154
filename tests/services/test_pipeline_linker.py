"""
PipelineLinker tests: 1:1 derivation and cascade invalidation.

Covers the chain processing -> packaging -> labeling, the single-downstream
rule, reopen discarding everything derived, and delete removing the whole
chain and releasing units.
"""

from decimal import Decimal

import pytest
from sqlalchemy import func, select

from harvest_kernel.domain.lifecycle import BatchStatus
from harvest_kernel.domain.product_lines import ProductLine, Stage
from harvest_kernel.exceptions import (
    BatchNotFoundError,
    DuplicateDerivationError,
    InvalidTransitionError,
    ValidationError,
)
from harvest_kernel.models.labeling_batch import LabelingBatch
from harvest_kernel.models.packaging_batch import PackagingBatch
from harvest_kernel.models.raw_unit import BatchUnitAssignment
from tests.conftest import FIXED_NOW, TEST_ACTOR_ID


def _count(session, model) -> int:
    return session.execute(select(func.count(model.id))).scalar_one()


class TestDeriveNext:
    def test_derives_packaging(self, pipeline_linker, make_processing_batch):
        processing = make_processing_batch("treacle", completed=True)

        packaging = pipeline_linker.derive_next(Stage.PROCESSING, processing.id, TEST_ACTOR_ID)

        assert packaging.stage is Stage.PACKAGING
        assert packaging.product_line is ProductLine.TREACLE
        assert packaging.status is BatchStatus.PENDING
        assert packaging.source_batch_id == processing.id
        assert packaging.source_batch_number == processing.batch_number
        assert packaging.batch_number == "01"
        assert packaging.started_at.replace(tzinfo=None) == FIXED_NOW.replace(tzinfo=None)
        assert set(packaging.materials) == {"alufoil", "vacuum_bag", "parchment_paper"}

    def test_source_must_be_completed(self, pipeline_linker, make_processing_batch):
        processing = make_processing_batch()

        with pytest.raises(InvalidTransitionError) as exc_info:
            pipeline_linker.derive_next(Stage.PROCESSING, processing.id, TEST_ACTOR_ID)

        assert exc_info.value.current_status == "in-progress"
        assert exc_info.value.stage == "processing"
        assert exc_info.value.batch_id == str(processing.id)

    def test_second_derivation_rejected(self, session, pipeline_linker, make_processing_batch):
        processing = make_processing_batch(completed=True)
        first = pipeline_linker.derive_next(Stage.PROCESSING, processing.id, TEST_ACTOR_ID)

        with pytest.raises(DuplicateDerivationError) as exc_info:
            pipeline_linker.derive_next(Stage.PROCESSING, processing.id, TEST_ACTOR_ID)

        assert exc_info.value.existing_batch_id == str(first.id)
        assert _count(session, PackagingBatch) == 1

    def test_labeling_has_no_downstream(self, pipeline_linker, completed_chain):
        labeling = completed_chain()[Stage.LABELING]

        with pytest.raises(ValidationError):
            pipeline_linker.derive_next(Stage.LABELING, labeling.id, TEST_ACTOR_ID)

    def test_unknown_source(self, pipeline_linker):
        with pytest.raises(BatchNotFoundError):
            pipeline_linker.derive_next(Stage.PACKAGING, "nope", TEST_ACTOR_ID)

    def test_numbers_per_stage_and_line(self, pipeline_linker, make_processing_batch):
        sap = [make_processing_batch("sap", completed=True) for _ in range(2)]
        treacle = make_processing_batch("treacle", completed=True)

        numbers = [
            pipeline_linker.derive_next(Stage.PROCESSING, b.id, TEST_ACTOR_ID).batch_number
            for b in sap
        ]
        treacle_number = pipeline_linker.derive_next(
            Stage.PROCESSING, treacle.id, TEST_ACTOR_ID
        ).batch_number

        assert numbers == ["01", "02"]
        assert treacle_number == "01"


class TestReopenCascade:
    """Reopening a completed batch discards everything derived from it."""

    def test_reopen_processing_discards_packaging_and_labeling(
        self, session, stage_service, batch_selector, completed_chain
    ):
        chain = completed_chain("sap")
        processing = chain[Stage.PROCESSING]

        view = stage_service.reopen(Stage.PROCESSING, processing.id, TEST_ACTOR_ID)

        assert view.status is BatchStatus.IN_PROGRESS
        assert view.unit_codes == tuple(sorted(chain["units"]))
        assert _count(session, PackagingBatch) == 0
        assert _count(session, LabelingBatch) == 0
        assert batch_selector.downstream_of(Stage.PROCESSING, processing.id) is None

    def test_reopen_packaging_discards_only_labeling(
        self, session, stage_service, batch_selector, completed_chain
    ):
        chain = completed_chain("sap")

        stage_service.reopen(Stage.PACKAGING, chain[Stage.PACKAGING].id, TEST_ACTOR_ID)

        assert _count(session, LabelingBatch) == 0
        packaging = batch_selector.get_derived(Stage.PACKAGING, chain[Stage.PACKAGING].id)
        assert packaging.status is BatchStatus.IN_PROGRESS
        assert packaging.finished_quantity == Decimal("48")

    def test_rederive_after_reopen(self, stage_service, pipeline_linker, completed_chain):
        chain = completed_chain("sap")
        processing = chain[Stage.PROCESSING]
        stage_service.reopen(Stage.PROCESSING, processing.id, TEST_ACTOR_ID)
        stage_service.submit(Stage.PROCESSING, processing.id, TEST_ACTOR_ID)

        packaging = pipeline_linker.derive_next(Stage.PROCESSING, processing.id, TEST_ACTOR_ID)

        assert packaging.status is BatchStatus.PENDING
        # The discarded packaging batch held "01"; density makes it reusable.
        assert packaging.batch_number == "01"

    def test_discarded_batches_logged_with_snapshot(
        self, captured_logs, stage_service, completed_chain
    ):
        chain = completed_chain("sap")
        seen = len(captured_logs())

        stage_service.reopen(Stage.PROCESSING, chain[Stage.PROCESSING].id, TEST_ACTOR_ID)

        records = [
            r for r in captured_logs()[seen:]
            if r["message"] == "downstream_batch_discarded"
        ]
        assert {r["stage"] for r in records} == {"packaging", "labeling"}
        packaging = next(r for r in records if r["stage"] == "packaging")
        assert packaging["reason"] == "reopen"
        assert Decimal(packaging["snapshot"]["finished_quantity"]) == 48
        assert packaging["level"] == "WARNING"


class TestCascadeDelete:
    def test_delete_processing_removes_chain_and_releases_units(
        self, session, pipeline_linker, unit_selector, completed_chain
    ):
        chain = completed_chain("sap", unit_count=3)

        report = pipeline_linker.cascade_delete(Stage.PROCESSING, chain[Stage.PROCESSING].id)

        assert report.units_released == 3
        assert report.total_deleted == 3
        assert report.deleted_ids(Stage.LABELING) == (chain[Stage.LABELING].id,)
        assert _count(session, PackagingBatch) == 0
        assert _count(session, LabelingBatch) == 0
        assert _count(session, BatchUnitAssignment) == 0
        free = {u.unit_code for u in unit_selector.list_free("sap")}
        assert set(chain["units"]) <= free

    def test_delete_packaging_keeps_processing(
        self, session, pipeline_linker, batch_selector, completed_chain
    ):
        chain = completed_chain("treacle")

        report = pipeline_linker.cascade_delete(Stage.PACKAGING, chain[Stage.PACKAGING].id)

        assert report.units_released == 0
        assert _count(session, LabelingBatch) == 0
        processing = batch_selector.get_processing(chain[Stage.PROCESSING].id)
        assert processing.unit_codes == tuple(sorted(chain["units"]))
        # The processing batch is eligible for packaging again.
        eligible = batch_selector.eligible_sources(Stage.PACKAGING, "treacle")
        assert [e.id for e in eligible] == [processing.id]

    def test_delete_leaf(self, session, pipeline_linker, completed_chain):
        chain = completed_chain()

        report = pipeline_linker.cascade_delete(Stage.LABELING, chain[Stage.LABELING].id)

        assert report.total_deleted == 1
        assert _count(session, PackagingBatch) == 1

    def test_other_chains_untouched(self, session, pipeline_linker, completed_chain):
        doomed = completed_chain("sap")
        kept = completed_chain("sap")

        pipeline_linker.cascade_delete(Stage.PROCESSING, doomed[Stage.PROCESSING].id)

        assert _count(session, PackagingBatch) == 1
        assert _count(session, LabelingBatch) == 1
        remaining = session.execute(select(LabelingBatch.id)).scalar_one()
        assert remaining == kept[Stage.LABELING].id

    def test_discard_logged_with_delete_reason(
        self, captured_logs, pipeline_linker, completed_chain
    ):
        chain = completed_chain()

        pipeline_linker.cascade_delete(Stage.PROCESSING, chain[Stage.PROCESSING].id)

        reasons = {
            r["reason"] for r in captured_logs()
            if r["message"] == "downstream_batch_discarded"
        }
        assert reasons == {"delete"}
