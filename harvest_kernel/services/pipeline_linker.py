"""
PipelineLinker -- 1:1 derivation between stages and cascade invalidation.

Responsibility:
    Creates the single downstream batch of a completed batch
    (processing -> packaging -> labeling) and removes derived chains when a
    batch is deleted or reopened.

Architecture position:
    Kernel > Services.  Called by StageService (delete, reopen) and by the
    API for derivation.

Invariants enforced:
    - At most one downstream batch per source.  Checked with the source row
      locked FOR UPDATE; UNIQUE(source_batch_id) is the backstop.
    - Only a ``completed`` source can be derived from.
    - Cascade completeness: after ``cascade_delete()`` no batch derived
      (directly or transitively) from the deleted batch exists, and none of
      its units is claimed.  Rows are deleted deepest stage first.
    - ``discard_downstream()`` keeps the batch itself and its units.
    - Every downstream batch removed is logged with a snapshot of its
      recorded data (``downstream_batch_discarded``).

Failure modes:
    - BatchNotFoundError: source or root batch missing.
    - InvalidTransitionError: source not completed.
    - DuplicateDerivationError: source already has a downstream batch.
    - DuplicateBatchNumberError: numbering backstop fired.
"""

from types import MappingProxyType
from uuid import UUID

from sqlalchemy import delete, inspect, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from harvest_kernel.domain.clock import Clock
from harvest_kernel.domain.dtos import CascadeReport, DerivedBatchView
from harvest_kernel.domain.lifecycle import INITIAL_STATUS, BatchStatus
from harvest_kernel.domain.product_lines import Stage
from harvest_kernel.exceptions import (
    DuplicateBatchNumberError,
    DuplicateDerivationError,
    InvalidTransitionError,
    ValidationError,
)
from harvest_kernel.logging_config import get_logger
from harvest_kernel.models.registry import StageBatch, model_for
from harvest_kernel.services.base import BaseService
from harvest_kernel.services.batch_numbering import (
    DEFAULT_BATCH_NUMBER_WIDTH,
    BatchNumberingService,
)
from harvest_kernel.services.unit_ledger import UnitLedger

logger = get_logger("services.pipeline_linker")


def snapshot(batch: StageBatch) -> dict[str, object]:
    """Column values of a batch row, for the discard log."""
    return {attr.key: getattr(batch, attr.key) for attr in inspect(batch).mapper.column_attrs}


class PipelineLinker(BaseService):
    """
    Derivation and cascade service.

    Contract:
        Every public method runs in a savepoint: a failure leaves neither a
        half-created batch nor a half-deleted chain.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        numbering: BatchNumberingService | None = None,
        ledger: UnitLedger | None = None,
        batch_number_width: int = DEFAULT_BATCH_NUMBER_WIDTH,
    ):
        super().__init__(session, clock)
        self._numbering = numbering or BatchNumberingService(session, batch_number_width)
        self._ledger = ledger or UnitLedger(session, self.clock)

    # =========================================================================
    # Derivation
    # =========================================================================

    def derive_next(
        self,
        source_stage: Stage,
        source_batch_id: object,
        actor_id: UUID,
    ) -> DerivedBatchView:
        """
        Create the downstream batch of a completed batch.

        Postconditions:
            - The new batch has the source's product line, a fresh batch
              number for its own stage, the stage's initial status and
              ``started_at = clock.now()``.
        """
        source_stage = Stage(source_stage)
        target = source_stage.downstream
        if target is None:
            raise ValidationError(
                f"{source_stage.value} batches have no downstream stage",
                field="sourceBatchId",
            )
        target_model = model_for(target)

        source = None
        number = ""
        try:
            with self.session.begin_nested():
                source = self._lock_batch(source_stage, source_batch_id)

                if source.status != BatchStatus.COMPLETED.value:
                    raise InvalidTransitionError(
                        source_stage.value,
                        str(source.id),
                        "derive",
                        source.status,
                        f"Source {source_stage.value} batch {source.batch_number} "
                        f"is not completed",
                    )

                existing = self._downstream_id(target, source.id)
                if existing is not None:
                    raise DuplicateDerivationError(
                        target.value, str(source.id), str(existing)
                    )

                number = self._numbering.next_number(source.product_line, target)
                derived = target_model(
                    source_batch_id=source.id,
                    batch_number=number,
                    product_line=source.product_line,
                    status=INITIAL_STATUS[target].value,
                    started_at=self.clock.now(),
                    created_by_id=actor_id,
                )
                self.session.add(derived)
                self.session.flush()
        except IntegrityError:
            if source is None:
                raise
            source_uuid = source.id
            existing = self._downstream_id(target, source_uuid)
            if existing is not None:
                raise DuplicateDerivationError(
                    target.value, str(source_uuid), str(existing)
                ) from None
            raise DuplicateBatchNumberError(
                source.product_line, target.value, number
            ) from None

        logger.info(
            "batch_derived",
            extra={
                "stage": target.value,
                "batch_id": str(derived.id),
                "batch_number": derived.batch_number,
                "product_line": derived.product_line,
                "source_stage": source_stage.value,
                "source_batch_id": str(source.id),
            },
        )
        return DerivedBatchView.from_model(target, derived, source.batch_number)

    # =========================================================================
    # Cascades
    # =========================================================================

    def cascade_delete(self, stage: Stage, batch_id: object) -> CascadeReport:
        """
        Delete a batch together with everything derived from it.

        Processing batches also release their units.
        """
        stage = Stage(stage)
        with self.session.begin_nested():
            root = self._lock_batch(stage, batch_id)
            root_id, root_number, root_line = root.id, root.batch_number, root.product_line
            chain = self._collect_chain(stage, root_id)
            self._log_discarded(chain, root_stage=stage, root_id=root_id, reason="delete")

            released = 0
            if stage is Stage.PROCESSING:
                released = self._ledger.release(root_id)

            chain = {stage: [root_id], **chain}
            self._delete_chain(chain)

        report = CascadeReport(
            stage=stage,
            batch_id=root_id,
            deleted=MappingProxyType({s: tuple(ids) for s, ids in chain.items()}),
            units_released=released,
        )
        logger.info(
            "batch_cascade_deleted",
            extra={
                "stage": stage.value,
                "batch_id": str(root_id),
                "batch_number": root_number,
                "product_line": root_line,
                "deleted_count": report.total_deleted,
                "units_released": released,
            },
        )
        return report

    def discard_downstream(self, stage: Stage, batch_id: UUID) -> CascadeReport:
        """
        Delete every batch derived from ``batch_id``; keep the batch itself.

        Preconditions:
            - The caller holds the lock on ``batch_id``.
        """
        stage = Stage(stage)
        with self.session.begin_nested():
            chain = self._collect_chain(stage, batch_id)
            self._log_discarded(chain, root_stage=stage, root_id=batch_id, reason="reopen")
            self._delete_chain(chain)

        return CascadeReport(
            stage=stage,
            batch_id=batch_id,
            deleted=MappingProxyType({s: tuple(ids) for s, ids in chain.items()}),
        )

    # -------------------------------------------------------------------------

    def _downstream_id(self, target: Stage, source_id: UUID) -> UUID | None:
        model = model_for(target)
        return self.session.execute(
            select(model.id).where(model.source_batch_id == source_id)
        ).scalar_one_or_none()

    def _collect_chain(self, stage: Stage, root_id: UUID) -> dict[Stage, list[UUID]]:
        """Ids of every batch derived from ``root_id``, per stage, locked."""
        chain: dict[Stage, list[UUID]] = {}
        parent_ids = [root_id]
        current = stage.downstream
        while current is not None and parent_ids:
            model = model_for(current)
            ids = list(
                self.session.execute(
                    select(model.id)
                    .where(model.source_batch_id.in_(parent_ids))
                    .order_by(model.id)
                    .with_for_update()
                ).scalars()
            )
            if ids:
                chain[current] = ids
            parent_ids = ids
            current = current.downstream
        return chain

    def _delete_chain(self, chain: dict[Stage, list[UUID]]) -> None:
        for stage in sorted(chain, key=_depth, reverse=True):
            model = model_for(stage)
            self.session.execute(delete(model).where(model.id.in_(chain[stage])))

    def _log_discarded(
        self,
        chain: dict[Stage, list[UUID]],
        root_stage: Stage,
        root_id: UUID,
        reason: str,
    ) -> None:
        for stage, ids in chain.items():
            model = model_for(stage)
            for batch in self.session.execute(
                select(model).where(model.id.in_(ids))
            ).scalars():
                logger.warning(
                    "downstream_batch_discarded",
                    extra={
                        "stage": stage.value,
                        "batch_id": str(batch.id),
                        "batch_number": batch.batch_number,
                        "product_line": batch.product_line,
                        "root_stage": root_stage.value,
                        "root_batch_id": str(root_id),
                        "reason": reason,
                        "snapshot": snapshot(batch),
                    },
                )


def _depth(stage: Stage) -> int:
    depth = 0
    while stage.upstream is not None:
        stage = stage.upstream
        depth += 1
    return depth
