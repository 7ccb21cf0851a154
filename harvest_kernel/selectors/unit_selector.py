"""
Module: harvest_kernel.selectors.unit_selector
Responsibility: Read-only listings of raw units -- the units free to be
    assigned, and the units held by one batch.
Architecture position: Kernel > Selectors.

A unit is free when no assignment row names it.  Edit screens pass
``for_batch_id`` so that the units already in the batch being edited are
listed alongside the free ones.
"""

from dataclasses import dataclass
from datetime import date
from uuid import UUID

from sqlalchemy import or_, select

from harvest_kernel.domain.dtos import RawUnitView
from harvest_kernel.domain.product_lines import ProductLine, normalize_product_line
from harvest_kernel.models.collection_draft import CollectionDraft, DraftStatus
from harvest_kernel.models.raw_unit import BatchUnitAssignment, RawUnit
from harvest_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class UnitFilters:
    """Optional narrowing of a free-unit listing."""

    active_only: bool = False
    for_batch_id: UUID | None = None
    collection_center: str | None = None
    collected_from: date | None = None
    collected_to: date | None = None


class UnitSelector(BaseSelector):
    """Selector for raw-unit queries."""

    def list_free(
        self,
        product_line: ProductLine | str,
        filters: UnitFilters | None = None,
    ) -> list[RawUnitView]:
        """
        Units of ``product_line`` not claimed by any batch.

        With ``filters.for_batch_id``, units claimed by that batch are
        included too.  With ``filters.active_only``, units of completed
        collection drafts are left out.

        Ordered by collection date, then unit code.
        """
        line = normalize_product_line(product_line)
        filters = filters or UnitFilters()

        stmt = (
            select(RawUnit, BatchUnitAssignment.processing_batch_id)
            .join(CollectionDraft, CollectionDraft.id == RawUnit.draft_id)
            .outerjoin(
                BatchUnitAssignment,
                BatchUnitAssignment.raw_unit_id == RawUnit.id,
            )
            .where(RawUnit.product_line == line.value)
        )

        if filters.for_batch_id is not None:
            stmt = stmt.where(
                or_(
                    BatchUnitAssignment.id.is_(None),
                    BatchUnitAssignment.processing_batch_id == filters.for_batch_id,
                )
            )
        else:
            stmt = stmt.where(BatchUnitAssignment.id.is_(None))

        if filters.active_only:
            stmt = stmt.where(CollectionDraft.status != DraftStatus.COMPLETED.value)
        if filters.collection_center:
            stmt = stmt.where(RawUnit.collection_center == filters.collection_center)
        if filters.collected_from is not None:
            stmt = stmt.where(CollectionDraft.collected_on >= filters.collected_from)
        if filters.collected_to is not None:
            stmt = stmt.where(CollectionDraft.collected_on <= filters.collected_to)

        stmt = stmt.order_by(CollectionDraft.collected_on, RawUnit.unit_code)

        return [
            RawUnitView.from_model(unit, assigned_batch_id=holder)
            for unit, holder in self.session.execute(stmt).unique().all()
        ]

    def units_of(self, batch_id: UUID) -> list[RawUnitView]:
        """Units claimed by ``batch_id``, ordered by unit code."""
        rows = self.session.execute(
            select(RawUnit)
            .join(BatchUnitAssignment, BatchUnitAssignment.raw_unit_id == RawUnit.id)
            .where(BatchUnitAssignment.processing_batch_id == batch_id)
            .order_by(RawUnit.unit_code)
        ).scalars().unique()
        return [RawUnitView.from_model(u, assigned_batch_id=batch_id) for u in rows]
