"""
StageService -- batch creation, field updates and status transitions.

Responsibility:
    The write side of the stage state machine.  Evaluates every requested
    transition with the pure functions in ``harvest_kernel.domain.lifecycle``
    and applies the outcome under a row lock: guards, downstream cascades,
    status change, audit fields and the structured log event.

Architecture position:
    Kernel > Services.  Uses BatchNumberingService, PipelineLinker and
    UnitLedger; returns views built by BatchSelector.

Invariants enforced:
    - The batch row is locked FOR UPDATE before its status is read, so two
      concurrent transitions of one batch serialize and the second sees the
      first's outcome.
    - Submit of a completed batch is a no-op success; every other refusal is
      an InvalidTransitionError carrying the current status.
    - Reopen deletes the derived downstream chain in the same savepoint as
      the status change.
    - Field updates require an editable status (pending, in-progress,
      on-hold).  In a combined update, reopen is applied before the field
      changes and every other transition after them.
    - Cancelling a processing batch releases its units.

Failure modes:
    - ValidationError: unknown field, negative measurement, material not
      used by the batch's line, product line change, empty update.
    - BatchNotFoundError, BatchNotEditableError, InvalidTransitionError,
      StageGuardError.
    - DuplicateBatchNumberError: numbering backstop fired on create.
"""

from collections.abc import Mapping
from datetime import date
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from harvest_kernel.db.types import numeric_column, to_measurement
from harvest_kernel.domain import lifecycle
from harvest_kernel.domain.clock import Clock
from harvest_kernel.domain.dtos import (
    CascadeReport,
    DerivedBatchView,
    ProcessingBatchView,
)
from harvest_kernel.domain.lifecycle import (
    INITIAL_STATUS,
    BatchAction,
    BatchStatus,
    TransitionResult,
)
from harvest_kernel.domain.product_lines import (
    LABELING_MATERIALS,
    PACKAGING_MATERIALS,
    ProductLine,
    Stage,
    normalize_product_line,
    profile_for,
)
from harvest_kernel.exceptions import (
    BatchNotEditableError,
    DuplicateBatchNumberError,
    InvalidTransitionError,
    StageGuardError,
    ValidationError,
)
from harvest_kernel.logging_config import get_logger
from harvest_kernel.models.processing_batch import MEASUREMENT_FIELDS, ProcessingBatch
from harvest_kernel.models.registry import StageBatch, model_for
from harvest_kernel.selectors.batch_selector import BatchSelector
from harvest_kernel.services.base import BaseService
from harvest_kernel.services.batch_numbering import (
    DEFAULT_BATCH_NUMBER_WIDTH,
    BatchNumberingService,
)
from harvest_kernel.services.pipeline_linker import PipelineLinker, snapshot
from harvest_kernel.services.unit_ledger import UnitLedger

logger = get_logger("services.stage")

_EVENTS: dict[BatchAction, str] = {
    BatchAction.SUBMIT: "batch_submitted",
    BatchAction.REOPEN: "batch_reopened",
    BatchAction.CANCEL: "batch_cancelled",
    BatchAction.HOLD: "batch_held",
    BatchAction.RESUME: "batch_resumed",
}


def _material_fields(materials: tuple[str, ...]) -> tuple[str, ...]:
    return tuple(f"{m}_{kind}" for m in materials for kind in ("quantity", "cost"))


EDITABLE_FIELDS: dict[Stage, frozenset[str]] = {
    Stage.PROCESSING: frozenset(("scheduled_date", "notes") + MEASUREMENT_FIELDS),
    Stage.PACKAGING: frozenset(
        ("notes", "finished_quantity") + _material_fields(PACKAGING_MATERIALS)
    ),
    Stage.LABELING: frozenset(("notes",) + _material_fields(LABELING_MATERIALS)),
}

# Keys routed through the state machine or checked, never written directly.
CONTROL_FIELDS = frozenset({"status", "product_line"})


class StageService(BaseService):
    """
    Lifecycle service for batches of every stage.

    Usage:
        with session_scope() as session:
            stages = StageService(session)
            batch = stages.create_processing_batch("sap", actor_id)
            stages.submit(Stage.PROCESSING, batch.id, actor_id)
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        numbering: BatchNumberingService | None = None,
        linker: PipelineLinker | None = None,
        ledger: UnitLedger | None = None,
        batch_number_width: int = DEFAULT_BATCH_NUMBER_WIDTH,
    ):
        super().__init__(session, clock)
        self._numbering = numbering or BatchNumberingService(session, batch_number_width)
        self._ledger = ledger or UnitLedger(session, self.clock)
        self._linker = linker or PipelineLinker(
            session, self.clock, numbering=self._numbering, ledger=self._ledger
        )
        self._selector = BatchSelector(session)

    # =========================================================================
    # Creation
    # =========================================================================

    def create_processing_batch(
        self,
        product_line: ProductLine | str,
        actor_id: UUID,
        scheduled_date: date | None = None,
        notes: str | None = None,
    ) -> ProcessingBatchView:
        """
        Create an empty processing batch with the next batch number.

        ``scheduled_date`` defaults to the clock's current date.
        """
        line = normalize_product_line(product_line)
        scheduled = _coerce_date(scheduled_date) if scheduled_date is not None else None
        notes = _coerce_notes(notes)

        number = ""
        try:
            with self.session.begin_nested():
                number = self._numbering.next_number(line, Stage.PROCESSING)
                batch = ProcessingBatch(
                    batch_number=number,
                    product_line=line.value,
                    scheduled_date=scheduled or self.clock.today(),
                    status=INITIAL_STATUS[Stage.PROCESSING].value,
                    notes=notes,
                    created_by_id=actor_id,
                )
                self.session.add(batch)
                self.session.flush()
        except IntegrityError:
            raise DuplicateBatchNumberError(
                line.value, Stage.PROCESSING.value, number
            ) from None

        logger.info(
            "batch_created",
            extra={
                "stage": Stage.PROCESSING.value,
                "batch_id": str(batch.id),
                "batch_number": number,
                "product_line": line.value,
            },
        )
        return self._selector.get_processing(batch.id)

    # =========================================================================
    # Transitions
    # =========================================================================

    def submit(self, stage: Stage, batch_id: object, actor_id: UUID):
        return self.apply(stage, batch_id, BatchAction.SUBMIT, actor_id)

    def reopen(self, stage: Stage, batch_id: object, actor_id: UUID):
        return self.apply(stage, batch_id, BatchAction.REOPEN, actor_id)

    def cancel(self, stage: Stage, batch_id: object, actor_id: UUID):
        return self.apply(stage, batch_id, BatchAction.CANCEL, actor_id)

    def hold(self, stage: Stage, batch_id: object, actor_id: UUID):
        return self.apply(stage, batch_id, BatchAction.HOLD, actor_id)

    def resume(self, stage: Stage, batch_id: object, actor_id: UUID):
        return self.apply(stage, batch_id, BatchAction.RESUME, actor_id)

    def apply(
        self,
        stage: Stage,
        batch_id: object,
        action: BatchAction,
        actor_id: UUID,
    ) -> ProcessingBatchView | DerivedBatchView:
        """Run one lifecycle action against a batch and return its new view."""
        stage = Stage(stage)
        action = BatchAction(action)
        with self.session.begin_nested():
            batch = self._lock_batch(stage, batch_id)
            self._transition(stage, batch, action, actor_id)
        return self._selector.get(stage, batch.id)

    def _transition(
        self,
        stage: Stage,
        batch: StageBatch,
        action: BatchAction,
        actor_id: UUID,
    ) -> TransitionResult:
        result = lifecycle.evaluate(action, batch.status, stage)
        if not result.allowed:
            raise InvalidTransitionError(
                stage.value, str(batch.id), action.value, batch.status, result.reason
            )
        if result.is_noop:
            logger.debug(
                "batch_transition_noop",
                extra={
                    "stage": stage.value,
                    "batch_id": str(batch.id),
                    "action": action.value,
                    "status": batch.status,
                },
            )
            return result

        if action is BatchAction.SUBMIT:
            missing = lifecycle.missing_for_submit(
                stage, profile_for(batch.product_line), snapshot(batch)
            )
            if missing:
                raise StageGuardError(stage.value, str(batch.id), batch.status, list(missing))

        discarded: CascadeReport | None = None
        if result.cascades_downstream:
            discarded = self._linker.discard_downstream(stage, batch.id)

        released = 0
        if action is BatchAction.CANCEL and stage is Stage.PROCESSING:
            released = self._ledger.release(batch.id)

        batch.status = result.to_status.value
        batch.updated_by_id = actor_id
        self.session.flush()

        extra = {
            "stage": stage.value,
            "batch_id": str(batch.id),
            "batch_number": batch.batch_number,
            "product_line": batch.product_line,
            "from_status": result.from_status.value,
            "to_status": result.to_status.value,
        }
        if discarded is not None:
            extra["downstream_discarded"] = discarded.total_deleted
        if released:
            extra["units_released"] = released
        logger.info(_EVENTS[action], extra=extra)
        return result

    # =========================================================================
    # Field updates
    # =========================================================================

    def update(
        self,
        stage: Stage,
        batch_id: object,
        changes: Mapping[str, object],
        actor_id: UUID,
    ) -> ProcessingBatchView | DerivedBatchView:
        """
        Apply field changes and an optional target ``status``.

        ``changes`` uses column names (``gas_cost``, ``bottle_quantity``,
        ``scheduled_date`` ...).  ``product_line`` may be sent but must match
        the batch's line.
        """
        stage = Stage(stage)
        changes = dict(changes)
        if not changes:
            raise ValidationError("No fields to update")

        unknown = sorted(set(changes) - EDITABLE_FIELDS[stage] - CONTROL_FIELDS)
        if unknown:
            raise ValidationError(
                f"Fields cannot be updated on a {stage.value} batch: {', '.join(unknown)}",
                field=unknown[0],
            )

        target = _coerce_status(changes.pop("status", None))
        requested_line = changes.pop("product_line", None)
        line = normalize_product_line(requested_line) if requested_line is not None else None
        values = {name: _coerce_field(stage, name, value) for name, value in changes.items()}

        with self.session.begin_nested():
            batch = self._lock_batch(stage, batch_id)

            if line is not None and line.value != batch.product_line:
                raise ValidationError(
                    "The product line of a batch cannot be changed", field="productType"
                )
            self._check_materials(stage, batch, values)

            action = None
            if target is not None:
                action = lifecycle.action_for_target(batch.status, target)
                if action is None and target.value != batch.status:
                    raise InvalidTransitionError(
                        stage.value,
                        str(batch.id),
                        "update",
                        batch.status,
                        f"Cannot move a {batch.status} {stage.value} batch to {target.value}",
                    )

            if action is BatchAction.REOPEN:
                self._transition(stage, batch, action, actor_id)

            if values:
                if not lifecycle.is_editable(batch.status):
                    raise BatchNotEditableError(stage.value, str(batch.id), batch.status)
                for name, value in values.items():
                    setattr(batch, name, value)
                batch.updated_by_id = actor_id
                self.session.flush()
                logger.info(
                    "batch_updated",
                    extra={
                        "stage": stage.value,
                        "batch_id": str(batch.id),
                        "batch_number": batch.batch_number,
                        "fields": sorted(values),
                    },
                )

            if action is not None and action is not BatchAction.REOPEN:
                self._transition(stage, batch, action, actor_id)

        return self._selector.get(stage, batch.id)

    @staticmethod
    def _check_materials(
        stage: Stage, batch: StageBatch, values: Mapping[str, object]
    ) -> None:
        unused = profile_for(batch.product_line).unused_materials_for(stage)
        rejected = sorted(
            name
            for name, value in values.items()
            if value is not None and name.rsplit("_", 1)[0] in unused
        )
        if rejected:
            raise ValidationError(
                f"Not used by {batch.product_line} {stage.value} batches: "
                f"{', '.join(rejected)}",
                field=rejected[0],
            )

    # =========================================================================
    # Deletion
    # =========================================================================

    def delete(self, stage: Stage, batch_id: object, actor_id: UUID) -> CascadeReport:
        """Delete a batch and everything derived from it."""
        report = self._linker.cascade_delete(stage, batch_id)
        logger.info(
            "batch_deleted",
            extra={
                "stage": Stage(stage).value,
                "batch_id": str(report.batch_id),
                "actor_id": str(actor_id),
            },
        )
        return report


# -----------------------------------------------------------------------------
# Input coercion (runs before any transactional work)
# -----------------------------------------------------------------------------


def _coerce_status(value: object) -> BatchStatus | None:
    if value is None:
        return None
    try:
        return BatchStatus(value)
    except ValueError:
        raise ValidationError(f"Unknown batch status: {value!r}", field="status") from None


def _coerce_date(value: object) -> date:
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value)
        except ValueError:
            pass
    raise ValidationError(f"Invalid date: {value!r}", field="scheduled_date")


def _coerce_notes(value: object) -> str | None:
    if value is None or isinstance(value, str):
        return value
    raise ValidationError("notes must be a string", field="notes")


def _coerce_field(stage: Stage, name: str, value: object) -> object:
    if name == "scheduled_date":
        if value is None:
            raise ValidationError("scheduled_date cannot be cleared", field=name)
        return _coerce_date(value)
    if name == "notes":
        return _coerce_notes(value)
    try:
        return to_measurement(value, name, numeric_column(model_for(stage), name))
    except ValueError as exc:
        raise ValidationError(str(exc), field=name) from None
