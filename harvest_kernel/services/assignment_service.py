"""
AssignmentService -- replace the unit set of a processing batch.

Responsibility:
    ``set_batch_units()`` makes the units of a processing batch exactly the
    requested set, atomically: the previous set is released and the new set
    claimed in one savepoint.

Architecture position:
    Kernel > Services.  Sits on UnitLedger; called by the API and by
    StageService-level workflows.

Invariants enforced:
    - Input is validated before any transactional work: a list of non-empty
      strings, no duplicates, at most ``max_units`` entries.
    - The batch row is locked FOR UPDATE for the whole replace, so two
      concurrent replaces of the same batch serialize.
    - Replace semantics: on success the batch holds exactly the requested
      units; on any failure it still holds exactly its previous units.
    - An unchanged set is a no-op success in any status but ``cancelled``;
      a changed set requires an editable batch.

Failure modes:
    - ValidationError / UnitLimitExceededError: malformed request.
    - BatchNotFoundError, BatchNotEditableError.
    - UnitsNotFoundError, UnitConflictError (from UnitLedger).
"""

from collections.abc import Sequence
from uuid import UUID

from sqlalchemy.orm import Session

from harvest_kernel.domain.clock import Clock
from harvest_kernel.domain.dtos import ProcessingBatchView
from harvest_kernel.domain.lifecycle import BatchStatus, is_editable
from harvest_kernel.domain.product_lines import Stage
from harvest_kernel.exceptions import (
    BatchNotEditableError,
    UnitLimitExceededError,
    ValidationError,
)
from harvest_kernel.logging_config import get_logger
from harvest_kernel.selectors.batch_selector import BatchSelector
from harvest_kernel.services.base import BaseService
from harvest_kernel.services.unit_ledger import UnitLedger

logger = get_logger("services.assignment")

DEFAULT_MAX_UNITS_PER_BATCH = 15


def validate_unit_codes(unit_codes: object, max_units: int) -> list[str]:
    """
    Check a requested unit set before any database work.

    Returns the codes with surrounding whitespace stripped, in request order.
    """
    if isinstance(unit_codes, (str, bytes)) or not isinstance(unit_codes, Sequence):
        raise ValidationError("unitIds must be a list of unit ids", field="unitIds")
    codes: list[str] = []
    for code in unit_codes:
        if not isinstance(code, str) or not code.strip():
            raise ValidationError(
                "unitIds must contain only non-empty strings", field="unitIds"
            )
        codes.append(code.strip())
    duplicates = sorted({c for c in codes if codes.count(c) > 1})
    if duplicates:
        raise ValidationError(
            f"Duplicate unit ids: {', '.join(duplicates)}", field="unitIds"
        )
    if len(codes) > max_units:
        raise UnitLimitExceededError(len(codes), max_units)
    return codes


class AssignmentService(BaseService):
    """
    Unit-set replacement for processing batches.

    Usage:
        with session_scope() as session:
            view = AssignmentService(session).set_batch_units(
                batch_id, ["C-101", "C-102"], actor_id,
            )
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        ledger: UnitLedger | None = None,
        max_units: int = DEFAULT_MAX_UNITS_PER_BATCH,
    ):
        super().__init__(session, clock)
        self._ledger = ledger or UnitLedger(session, self.clock)
        self._max_units = max_units

    def set_batch_units(
        self,
        batch_id: object,
        unit_codes: Sequence[str],
        actor_id: UUID,
    ) -> ProcessingBatchView:
        """
        Make the batch's units exactly ``unit_codes``.

        Postconditions:
            - The returned view lists exactly the requested codes.
        """
        codes = validate_unit_codes(unit_codes, self._max_units)

        with self.session.begin_nested():
            batch = self._lock_batch(Stage.PROCESSING, batch_id)
            status = BatchStatus(batch.status)
            current = self._ledger.codes_of(batch.id)

            if set(current) == set(codes):
                if status is BatchStatus.CANCELLED:
                    raise BatchNotEditableError(
                        Stage.PROCESSING.value, str(batch.id), status.value
                    )
                logger.debug(
                    "batch_units_unchanged",
                    extra={"batch_id": str(batch.id), "unit_count": len(codes)},
                )
            else:
                if not is_editable(status):
                    raise BatchNotEditableError(
                        Stage.PROCESSING.value, str(batch.id), status.value
                    )
                self._ledger.release(batch.id)
                self._ledger.try_claim(batch.id, batch.product_line, codes, actor_id)
                batch.updated_by_id = actor_id
                self.session.flush()

                logger.info(
                    "batch_units_set",
                    extra={
                        "batch_id": str(batch.id),
                        "batch_number": batch.batch_number,
                        "product_line": batch.product_line,
                        "added": sorted(set(codes) - set(current)),
                        "removed": sorted(set(current) - set(codes)),
                        "unit_count": len(codes),
                    },
                )

        return BatchSelector(self.session).get_processing(batch.id)
