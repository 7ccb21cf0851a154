"""
Request and response models for the Harvest Pipeline API.

Bodies are camelCase on the wire (``productType``, ``unitIds``) and
snake_case in Python.  Responses are built from the kernel's frozen views by
the ``from_view()`` constructors; no ORM object reaches this module.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from harvest_kernel.domain.dtos import (
    DerivedBatchView,
    EligibleSourceView,
    ProcessingBatchView,
    RawUnitView,
)


class ApiModel(BaseModel):
    """Base model: camelCase aliases, snake_case attributes."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RequestModel(ApiModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )


# =============================================================================
# Health
# =============================================================================


class HealthResponse(ApiModel):
    status: str
    database: str
    version: str


# =============================================================================
# Units
# =============================================================================


class UnitResponse(ApiModel):
    id: str = Field(description="Unit code")
    product_type: str
    draft_id: UUID
    collected_on: date
    collection_center: Optional[str] = None
    quantity: Decimal
    brix_value: Optional[Decimal] = None
    ph_value: Optional[Decimal] = None
    batch_id: Optional[UUID] = None

    @classmethod
    def from_view(cls, view: RawUnitView) -> UnitResponse:
        return cls(
            id=view.unit_code,
            product_type=view.product_line.value,
            draft_id=view.draft_id,
            collected_on=view.collected_on,
            collection_center=view.collection_center,
            quantity=view.quantity,
            brix_value=view.brix_value,
            ph_value=view.ph_value,
            batch_id=view.assigned_batch_id,
        )


class UnitListResponse(ApiModel):
    units: list[UnitResponse]


# =============================================================================
# Processing batches
# =============================================================================


class BatchCreateRequest(RequestModel):
    product_type: str
    scheduled_date: Optional[date] = None
    notes: Optional[str] = None


class ProcessingBatchUpdateRequest(RequestModel):
    product_type: Optional[str] = None
    status: Optional[str] = None
    scheduled_date: Optional[date] = None
    notes: Optional[str] = None
    total_output: Optional[Decimal] = None
    gas_used_kg: Optional[Decimal] = None
    gas_cost: Optional[Decimal] = None
    labor_cost: Optional[Decimal] = None


class SetUnitsRequest(RequestModel):
    unit_ids: list[str]


class ProcessingBatchResponse(ApiModel):
    id: UUID
    batch_number: str
    product_type: str
    status: str
    scheduled_date: date
    notes: Optional[str] = None
    total_output: Optional[Decimal] = None
    gas_used_kg: Optional[Decimal] = None
    gas_cost: Optional[Decimal] = None
    labor_cost: Optional[Decimal] = None
    unit_ids: list[str] = []
    unit_count: int = 0
    total_quantity: Decimal = Decimal("0")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_view(cls, view: ProcessingBatchView) -> ProcessingBatchResponse:
        return cls(
            id=view.id,
            batch_number=view.batch_number,
            product_type=view.product_line.value,
            status=view.status.value,
            scheduled_date=view.scheduled_date,
            notes=view.notes,
            total_output=view.total_output,
            gas_used_kg=view.gas_used_kg,
            gas_cost=view.gas_cost,
            labor_cost=view.labor_cost,
            unit_ids=list(view.unit_codes),
            unit_count=view.unit_count,
            total_quantity=view.total_quantity,
            created_at=view.created_at,
            updated_at=view.updated_at,
        )


class ProcessingBatchListResponse(ApiModel):
    batches: list[ProcessingBatchResponse]


# =============================================================================
# Packaging / labeling batches
# =============================================================================


class DeriveRequest(RequestModel):
    source_batch_id: str


class PackagingBatchUpdateRequest(RequestModel):
    status: Optional[str] = None
    notes: Optional[str] = None
    finished_quantity: Optional[Decimal] = None
    bottle_quantity: Optional[Decimal] = None
    bottle_cost: Optional[Decimal] = None
    lid_quantity: Optional[Decimal] = None
    lid_cost: Optional[Decimal] = None
    alufoil_quantity: Optional[Decimal] = None
    alufoil_cost: Optional[Decimal] = None
    vacuum_bag_quantity: Optional[Decimal] = None
    vacuum_bag_cost: Optional[Decimal] = None
    parchment_paper_quantity: Optional[Decimal] = None
    parchment_paper_cost: Optional[Decimal] = None


class LabelingBatchUpdateRequest(RequestModel):
    status: Optional[str] = None
    notes: Optional[str] = None
    sticker_quantity: Optional[Decimal] = None
    sticker_cost: Optional[Decimal] = None
    shrink_sleeve_quantity: Optional[Decimal] = None
    shrink_sleeve_cost: Optional[Decimal] = None
    neck_tag_quantity: Optional[Decimal] = None
    neck_tag_cost: Optional[Decimal] = None
    corrugated_carton_quantity: Optional[Decimal] = None
    corrugated_carton_cost: Optional[Decimal] = None


class MaterialResponse(ApiModel):
    quantity: Optional[Decimal] = None
    cost: Optional[Decimal] = None


class DerivedBatchResponse(ApiModel):
    id: UUID
    stage: str
    batch_number: str
    product_type: str
    status: str
    source_batch_id: UUID
    source_batch_number: Optional[str] = None
    started_at: datetime
    notes: Optional[str] = None
    finished_quantity: Optional[Decimal] = None
    # Keyed by material name, e.g. {"bottle": {"quantity": ..., "cost": ...}}
    materials: dict[str, MaterialResponse] = {}
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_view(cls, view: DerivedBatchView) -> DerivedBatchResponse:
        return cls(
            id=view.id,
            stage=view.stage.value,
            batch_number=view.batch_number,
            product_type=view.product_line.value,
            status=view.status.value,
            source_batch_id=view.source_batch_id,
            source_batch_number=view.source_batch_number,
            started_at=view.started_at,
            notes=view.notes,
            finished_quantity=view.finished_quantity,
            materials={
                name: MaterialResponse(quantity=usage.quantity, cost=usage.cost)
                for name, usage in view.materials.items()
            },
            created_at=view.created_at,
            updated_at=view.updated_at,
        )


class DerivedBatchListResponse(ApiModel):
    batches: list[DerivedBatchResponse]


class EligibleSourceResponse(ApiModel):
    id: UUID
    stage: str
    batch_number: str
    product_type: str
    completed_at: Optional[datetime] = None
    output_quantity: Optional[Decimal] = None

    @classmethod
    def from_view(cls, view: EligibleSourceView) -> EligibleSourceResponse:
        return cls(
            id=view.id,
            stage=view.stage.value,
            batch_number=view.batch_number,
            product_type=view.product_line.value,
            completed_at=view.completed_at,
            output_quantity=view.output_quantity,
        )


class EligibleSourceListResponse(ApiModel):
    batches: list[EligibleSourceResponse]
