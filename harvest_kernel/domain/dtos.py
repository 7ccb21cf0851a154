"""
DTOs -- immutable views handed out of the kernel.

Responsibility:
    Services and selectors never return ORM entities.  Every read or write
    operation answers with one of the frozen dataclasses below, built at the
    service boundary by the ``from_model()`` converters.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  ORM types are imported for type
    checking only; ``from_model()`` is invoked from services and selectors,
    never from domain logic.

Invariants enforced:
    - Views are frozen; collections inside them are tuples or read-only
      mappings.
    - ``ProcessingBatchView.unit_codes`` is sorted, so two views of the same
      unit set compare equal.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from types import MappingProxyType
from typing import TYPE_CHECKING
from uuid import UUID

from harvest_kernel.domain.lifecycle import BatchStatus
from harvest_kernel.domain.product_lines import (
    ProductLine,
    Stage,
    profile_for,
)

if TYPE_CHECKING:
    from harvest_kernel.models.collection_draft import CollectionDraft
    from harvest_kernel.models.labeling_batch import LabelingBatch
    from harvest_kernel.models.packaging_batch import PackagingBatch
    from harvest_kernel.models.processing_batch import ProcessingBatch
    from harvest_kernel.models.raw_unit import RawUnit


@dataclass(frozen=True)
class CollectionDraftView:
    id: UUID
    product_line: ProductLine
    collected_on: date
    status: str

    @classmethod
    def from_model(cls, model: CollectionDraft) -> CollectionDraftView:
        return cls(
            id=model.id,
            product_line=ProductLine(model.product_line),
            collected_on=model.collected_on,
            status=model.status,
        )


@dataclass(frozen=True)
class RawUnitView:
    """
    A raw unit as seen by batch editors.

    ``assigned_batch_id`` is None for a free unit.
    """

    id: UUID
    unit_code: str
    product_line: ProductLine
    draft_id: UUID
    collected_on: date
    collection_center: str | None
    quantity: Decimal
    brix_value: Decimal | None = None
    ph_value: Decimal | None = None
    assigned_batch_id: UUID | None = None

    @property
    def is_free(self) -> bool:
        return self.assigned_batch_id is None

    @classmethod
    def from_model(
        cls, model: RawUnit, assigned_batch_id: UUID | None = None
    ) -> RawUnitView:
        return cls(
            id=model.id,
            unit_code=model.unit_code,
            product_line=ProductLine(model.product_line),
            draft_id=model.draft_id,
            collected_on=model.draft.collected_on,
            collection_center=model.collection_center,
            quantity=model.quantity,
            brix_value=model.brix_value,
            ph_value=model.ph_value,
            assigned_batch_id=assigned_batch_id,
        )


@dataclass(frozen=True)
class ProcessingBatchView:
    """
    A processing batch with its unit membership.

    Contract:
        ``unit_codes`` is the exact set of units claimed by the batch at the
        time the view was built; ``total_quantity`` is their summed quantity.
    """

    id: UUID
    batch_number: str
    product_line: ProductLine
    status: BatchStatus
    scheduled_date: date
    notes: str | None
    total_output: Decimal | None
    gas_used_kg: Decimal | None
    gas_cost: Decimal | None
    labor_cost: Decimal | None
    unit_codes: tuple[str, ...] = ()
    total_quantity: Decimal = Decimal("0")
    created_at: datetime | None = None
    updated_at: datetime | None = None
    created_by_id: UUID | None = None

    stage: Stage = field(default=Stage.PROCESSING, init=False)

    @property
    def unit_count(self) -> int:
        return len(self.unit_codes)

    @classmethod
    def from_model(
        cls,
        model: ProcessingBatch,
        units: Iterable[RawUnit] = (),
    ) -> ProcessingBatchView:
        units = list(units)
        return cls(
            id=model.id,
            batch_number=model.batch_number,
            product_line=ProductLine(model.product_line),
            status=BatchStatus(model.status),
            scheduled_date=model.scheduled_date,
            notes=model.notes,
            total_output=model.total_output,
            gas_used_kg=model.gas_used_kg,
            gas_cost=model.gas_cost,
            labor_cost=model.labor_cost,
            unit_codes=tuple(sorted(u.unit_code for u in units)),
            total_quantity=sum((u.quantity for u in units), Decimal("0")),
            created_at=model.created_at,
            updated_at=model.updated_at,
            created_by_id=model.created_by_id,
        )


@dataclass(frozen=True)
class MaterialUsage:
    """Quantity and cost of one packaging or labeling material."""

    quantity: Decimal | None = None
    cost: Decimal | None = None


@dataclass(frozen=True)
class DerivedBatchView:
    """
    A packaging or labeling batch.

    ``materials`` lists only the materials used by the batch's product line.
    ``finished_quantity`` is always None for labeling batches.
    """

    id: UUID
    stage: Stage
    batch_number: str
    product_line: ProductLine
    status: BatchStatus
    source_batch_id: UUID
    source_batch_number: str | None
    started_at: datetime
    notes: str | None
    materials: Mapping[str, MaterialUsage]
    finished_quantity: Decimal | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    created_by_id: UUID | None = None

    @classmethod
    def from_model(
        cls,
        stage: Stage,
        model: PackagingBatch | LabelingBatch,
        source_batch_number: str | None = None,
    ) -> DerivedBatchView:
        profile = profile_for(model.product_line)
        materials = {
            name: MaterialUsage(
                quantity=getattr(model, f"{name}_quantity"),
                cost=getattr(model, f"{name}_cost"),
            )
            for name in profile.materials_for(stage)
        }
        return cls(
            id=model.id,
            stage=stage,
            batch_number=model.batch_number,
            product_line=ProductLine(model.product_line),
            status=BatchStatus(model.status),
            source_batch_id=model.source_batch_id,
            source_batch_number=source_batch_number,
            started_at=model.started_at,
            notes=model.notes,
            materials=MappingProxyType(materials),
            finished_quantity=getattr(model, "finished_quantity", None),
            created_at=model.created_at,
            updated_at=model.updated_at,
            created_by_id=model.created_by_id,
        )


@dataclass(frozen=True)
class EligibleSourceView:
    """A completed upstream batch that has no downstream batch yet."""

    id: UUID
    stage: Stage
    batch_number: str
    product_line: ProductLine
    completed_at: datetime | None
    # total_output for processing sources, finished_quantity for packaging
    output_quantity: Decimal | None = None


@dataclass(frozen=True)
class ClaimResult:
    """Outcome of a successful all-or-nothing claim."""

    batch_id: UUID
    claimed: tuple[str, ...] = ()
    already_held: tuple[str, ...] = ()

    @property
    def unit_codes(self) -> tuple[str, ...]:
        return tuple(sorted(self.claimed + self.already_held))


@dataclass(frozen=True)
class CascadeReport:
    """
    What a cascade delete or downstream discard removed.

    ``deleted`` maps each stage to the ids removed from it, deepest stage
    first in deletion order.
    """

    stage: Stage
    batch_id: UUID
    deleted: Mapping[Stage, tuple[UUID, ...]] = field(
        default_factory=lambda: MappingProxyType({})
    )
    units_released: int = 0

    @property
    def total_deleted(self) -> int:
        return sum(len(ids) for ids in self.deleted.values())

    def deleted_ids(self, stage: Stage) -> tuple[UUID, ...]:
        return tuple(self.deleted.get(stage, ()))
