"""
Module: harvest_kernel.models.raw_unit
Responsibility: ORM persistence for raw collected units and for their
    exclusive assignment to processing batches.
Architecture position: Kernel > Models.  May import from db/base.py and other
    models only.

Invariants enforced:
    - unit_code is unique (uq_raw_unit_code); it is the identifier clients
      see and send back when assigning units.
    - UNIQUE(raw_unit_id) on batch_unit_assignments: a unit is claimed by at
      most one processing batch at a time, at the storage level.
    - Deleting a processing batch deletes its assignment rows
      (ON DELETE CASCADE); the units themselves are never deleted by the
      engine.

Failure modes:
    - IntegrityError on a second assignment of the same unit, translated to
      UnitConflictError by the Assignment Service.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from harvest_kernel.db.base import Base, TrackedBase, UUIDString
from harvest_kernel.models.collection_draft import CollectionDraft


class RawUnit(TrackedBase):
    """
    A discrete container of raw material collected in the field.

    Guarantees:
        - quantity > 0 (checked by UnitLedger.record_unit).
        - product_line equals the product line of its draft.
    """

    __tablename__ = "raw_units"

    __table_args__ = (
        UniqueConstraint("unit_code", name="uq_raw_unit_code"),
        Index("idx_raw_unit_line", "product_line"),
        Index("idx_raw_unit_draft", "draft_id"),
    )

    # Code written on the bucket/can in the field
    unit_code: Mapped[str] = mapped_column(String(64), nullable=False)

    product_line: Mapped[str] = mapped_column(String(20), nullable=False)

    draft_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("collection_drafts.id", ondelete="CASCADE"),
        nullable=False,
    )

    # Free text; centers are administered outside the engine
    collection_center: Mapped[str | None] = mapped_column(String(100), nullable=True)

    quantity: Mapped[Decimal] = mapped_column(Numeric(14, 3), nullable=False)

    brix_value: Mapped[Decimal | None] = mapped_column(Numeric(5, 2), nullable=True)

    ph_value: Mapped[Decimal | None] = mapped_column(Numeric(4, 2), nullable=True)

    draft: Mapped[CollectionDraft] = relationship(
        CollectionDraft,
        lazy="joined",
        innerjoin=True,
    )

    def __repr__(self) -> str:
        return f"<RawUnit {self.unit_code} ({self.product_line})>"


class BatchUnitAssignment(Base):
    """
    Claim of one raw unit by one processing batch.

    Contract:
        Rows are owned by the Assignment Service.  No other code inserts
        them; the Pipeline Linker deletes them only while deleting the
        owning batch.
    """

    __tablename__ = "batch_unit_assignments"

    __table_args__ = (
        UniqueConstraint("raw_unit_id", name="uq_assignment_raw_unit"),
        Index("idx_assignment_batch", "processing_batch_id"),
    )

    processing_batch_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("processing_batches.id", ondelete="CASCADE"),
        nullable=False,
    )

    raw_unit_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("raw_units.id", ondelete="CASCADE"),
        nullable=False,
    )

    added_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    added_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    raw_unit: Mapped[RawUnit] = relationship(RawUnit, lazy="joined", innerjoin=True)

    def __repr__(self) -> str:
        return f"<BatchUnitAssignment unit={self.raw_unit_id} batch={self.processing_batch_id}>"
