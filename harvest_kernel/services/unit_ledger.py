"""
UnitLedger -- raw units and their exclusive claims.

Responsibility:
    Records collected raw units (grouped in collection drafts) and owns the
    only code path that claims units for a processing batch or releases
    them again.

Architecture position:
    Kernel > Services.  Used by AssignmentService (set units) and
    PipelineLinker (release on delete).  Listings of free units live in
    ``UnitSelector``.

Invariants enforced:
    - Exclusivity: a unit is referenced by at most one assignment row.  The
      application check runs with the unit rows locked FOR UPDATE, in id
      order so that two claimers never deadlock; UNIQUE(raw_unit_id) is the
      storage-level backstop.
    - All-or-nothing: ``try_claim()`` runs in a savepoint.  If any unit is
      unknown, of another product line or claimed by a different batch,
      nothing is claimed.
    - Units already held by the claiming batch are a no-op success.

Failure modes:
    - UnitsNotFoundError listing every unresolved code.
    - UnitConflictError listing exactly the codes held by other batches.
    - ValidationError for units of another product line.
    - DuplicateUnitCodeError / DraftNotFoundError when recording units.
"""

from collections.abc import Iterable
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from harvest_kernel.db.types import numeric_column, to_measurement
from harvest_kernel.domain.clock import Clock
from harvest_kernel.domain.dtos import ClaimResult, CollectionDraftView, RawUnitView
from harvest_kernel.domain.product_lines import ProductLine, normalize_product_line
from harvest_kernel.exceptions import (
    DraftNotFoundError,
    DuplicateUnitCodeError,
    UnitConflictError,
    UnitsNotFoundError,
    ValidationError,
)
from harvest_kernel.logging_config import get_logger
from harvest_kernel.models.collection_draft import CollectionDraft, DraftStatus
from harvest_kernel.models.raw_unit import BatchUnitAssignment, RawUnit
from harvest_kernel.services.base import BaseService

logger = get_logger("services.unit_ledger")


def _reading(value: object, field: str) -> Decimal | None:
    try:
        return to_measurement(value, field, numeric_column(RawUnit, field))
    except ValueError as exc:
        raise ValidationError(str(exc), field=field) from None


class UnitLedger(BaseService):
    """
    Write side of the raw-unit ledger.

    Contract:
        Claims and releases are flushed inside the caller's transaction and
        become visible to other sessions only when it commits.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session, clock)

    # =========================================================================
    # Field collection
    # =========================================================================

    def open_draft(
        self,
        product_line: ProductLine | str,
        collected_on: date,
        actor_id: UUID,
        status: DraftStatus = DraftStatus.DRAFT,
    ) -> CollectionDraftView:
        line = normalize_product_line(product_line)
        draft = CollectionDraft(
            product_line=line.value,
            collected_on=collected_on,
            status=DraftStatus(status).value,
            created_by_id=actor_id,
        )
        self.session.add(draft)
        self.session.flush()
        logger.info(
            "collection_draft_opened",
            extra={
                "draft_id": str(draft.id),
                "product_line": line.value,
                "collected_on": collected_on,
            },
        )
        return CollectionDraftView.from_model(draft)

    def set_draft_status(
        self, draft_id: UUID, status: DraftStatus, actor_id: UUID
    ) -> CollectionDraftView:
        draft = self.session.get(CollectionDraft, draft_id)
        if draft is None:
            raise DraftNotFoundError(str(draft_id))
        draft.status = DraftStatus(status).value
        draft.updated_by_id = actor_id
        self.session.flush()
        return CollectionDraftView.from_model(draft)

    def record_unit(
        self,
        draft_id: UUID,
        unit_code: str,
        quantity: Decimal | int | str,
        actor_id: UUID,
        collection_center: str | None = None,
        brix_value: Decimal | None = None,
        ph_value: Decimal | None = None,
    ) -> RawUnitView:
        """
        Record one collected unit against a draft.

        Raises:
            ValidationError: empty code, non-positive quantity, bad reading.
            DraftNotFoundError: unknown draft.
            DuplicateUnitCodeError: the code is already recorded.
        """
        if not isinstance(unit_code, str) or not unit_code.strip():
            raise ValidationError("Unit code must be a non-empty string", field="unitCode")
        unit_code = unit_code.strip()
        amount = _reading(quantity, "quantity")
        brix = _reading(brix_value, "brix_value")
        ph = _reading(ph_value, "ph_value")
        if amount is None or amount <= 0:
            raise ValidationError("Unit quantity must be greater than 0", field="quantity")

        draft = self.session.get(CollectionDraft, draft_id)
        if draft is None:
            raise DraftNotFoundError(str(draft_id))

        unit = RawUnit(
            unit_code=unit_code,
            product_line=draft.product_line,
            draft_id=draft.id,
            collection_center=collection_center,
            quantity=amount,
            brix_value=brix,
            ph_value=ph,
            created_by_id=actor_id,
        )
        try:
            with self.session.begin_nested():
                self.session.add(unit)
                self.session.flush()
        except IntegrityError:
            raise DuplicateUnitCodeError(unit_code) from None

        logger.debug(
            "raw_unit_recorded",
            extra={"unit_code": unit_code, "product_line": draft.product_line},
        )
        return RawUnitView.from_model(unit)

    # =========================================================================
    # Claims
    # =========================================================================

    def try_claim(
        self,
        batch_id: UUID,
        product_line: ProductLine | str,
        unit_codes: Iterable[str],
        actor_id: UUID,
    ) -> ClaimResult:
        """
        Claim every unit in ``unit_codes`` for ``batch_id``, or none of them.

        Preconditions:
            - The processing batch row is locked by the caller.

        Postconditions:
            - On success, every listed unit is assigned to ``batch_id``.
            - On failure, no assignment row was added.
        """
        line = normalize_product_line(product_line)
        codes = list(dict.fromkeys(unit_codes))
        if not codes:
            return ClaimResult(batch_id=batch_id)

        try:
            with self.session.begin_nested():
                units = self._lock_units(codes)
                self._check_resolved(codes, units)
                self._check_line(line, units)

                held = self._holders([u.id for u in units])
                conflicts = sorted(
                    u.unit_code
                    for u in units
                    if u.id in held and held[u.id] != batch_id
                )
                if conflicts:
                    logger.warning(
                        "unit_claim_conflict",
                        extra={
                            "batch_id": str(batch_id),
                            "unit_codes": conflicts,
                        },
                    )
                    raise UnitConflictError(conflicts, batch_id=str(batch_id))

                already_held = tuple(sorted(u.unit_code for u in units if u.id in held))
                to_claim = [u for u in units if u.id not in held]
                now = self.clock.now()
                for unit in to_claim:
                    self.session.add(
                        BatchUnitAssignment(
                            processing_batch_id=batch_id,
                            raw_unit_id=unit.id,
                            added_at=now,
                            added_by_id=actor_id,
                        )
                    )
                self.session.flush()
        except IntegrityError:
            # Another transaction claimed a unit between our check and insert.
            conflicts = self._conflicting_codes(codes, batch_id)
            logger.warning(
                "unit_claim_conflict",
                extra={"batch_id": str(batch_id), "unit_codes": conflicts},
            )
            raise UnitConflictError(conflicts or codes, batch_id=str(batch_id)) from None

        return ClaimResult(
            batch_id=batch_id,
            claimed=tuple(sorted(u.unit_code for u in to_claim)),
            already_held=already_held,
        )

    def release(self, batch_id: UUID) -> int:
        """Drop every assignment of ``batch_id``; returns how many."""
        result = self.session.execute(
            delete(BatchUnitAssignment).where(
                BatchUnitAssignment.processing_batch_id == batch_id
            )
        )
        released = result.rowcount or 0
        if released:
            logger.debug(
                "units_released",
                extra={"batch_id": str(batch_id), "count": released},
            )
        return released

    def codes_of(self, batch_id: UUID) -> list[str]:
        """Unit codes currently claimed by ``batch_id``, sorted."""
        return sorted(
            self.session.execute(
                select(RawUnit.unit_code)
                .join(BatchUnitAssignment, BatchUnitAssignment.raw_unit_id == RawUnit.id)
                .where(BatchUnitAssignment.processing_batch_id == batch_id)
            ).scalars()
        )

    # -------------------------------------------------------------------------

    def _lock_units(self, codes: list[str]) -> list[RawUnit]:
        return list(
            self.session.execute(
                select(RawUnit)
                .where(RawUnit.unit_code.in_(codes))
                .order_by(RawUnit.id)
                .with_for_update(of=RawUnit)
                .execution_options(populate_existing=True)
            ).scalars().unique()
        )

    @staticmethod
    def _check_resolved(codes: list[str], units: list[RawUnit]) -> None:
        found = {u.unit_code for u in units}
        missing = [c for c in codes if c not in found]
        if missing:
            raise UnitsNotFoundError(missing)

    @staticmethod
    def _check_line(line: ProductLine, units: list[RawUnit]) -> None:
        foreign = sorted(u.unit_code for u in units if u.product_line != line.value)
        if foreign:
            raise ValidationError(
                f"Units do not belong to product line {line.value}: {', '.join(foreign)}",
                field="unitIds",
            )

    def _holders(self, unit_ids: list[UUID]) -> dict[UUID, UUID]:
        rows = self.session.execute(
            select(
                BatchUnitAssignment.raw_unit_id,
                BatchUnitAssignment.processing_batch_id,
            ).where(BatchUnitAssignment.raw_unit_id.in_(unit_ids))
        ).all()
        return {unit_id: holder for unit_id, holder in rows}

    def _conflicting_codes(self, codes: list[str], batch_id: UUID) -> list[str]:
        return sorted(
            self.session.execute(
                select(RawUnit.unit_code)
                .join(BatchUnitAssignment, BatchUnitAssignment.raw_unit_id == RawUnit.id)
                .where(
                    RawUnit.unit_code.in_(codes),
                    BatchUnitAssignment.processing_batch_id != batch_id,
                )
            ).scalars()
        )
