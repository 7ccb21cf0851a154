"""
Module: harvest_kernel.models.labeling_batch
Responsibility: ORM persistence for labeling batches, each derived from
    exactly one completed packaging batch.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - UNIQUE(source_batch_id) (uq_labeling_source), ON DELETE CASCADE from
      packaging_batches.
    - UNIQUE(product_line, batch_number).
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
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from harvest_kernel.db.base import TrackedBase, UUIDString


class LabelingBatch(TrackedBase):
    """Labeling of one packaging batch."""

    __tablename__ = "labeling_batches"

    __table_args__ = (
        UniqueConstraint("source_batch_id", name="uq_labeling_source"),
        UniqueConstraint(
            "product_line", "batch_number",
            name="uq_labeling_batch_number",
        ),
        Index("idx_labeling_line_status", "product_line", "status"),
    )

    source_batch_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("packaging_batches.id", ondelete="CASCADE"),
        nullable=False,
    )

    batch_number: Mapped[str] = mapped_column(String(20), nullable=False)

    product_line: Mapped[str] = mapped_column(String(20), nullable=False)

    status: Mapped[str] = mapped_column(String(20), nullable=False)

    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    sticker_quantity: Mapped[Decimal | None] = mapped_column(Numeric(14, 3), nullable=True)
    sticker_cost: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)

    # sap only
    shrink_sleeve_quantity: Mapped[Decimal | None] = mapped_column(
        Numeric(14, 3), nullable=True,
    )
    shrink_sleeve_cost: Mapped[Decimal | None] = mapped_column(
        Numeric(12, 2), nullable=True,
    )
    neck_tag_quantity: Mapped[Decimal | None] = mapped_column(Numeric(14, 3), nullable=True)
    neck_tag_cost: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)

    corrugated_carton_quantity: Mapped[Decimal | None] = mapped_column(
        Numeric(14, 3), nullable=True,
    )
    corrugated_carton_cost: Mapped[Decimal | None] = mapped_column(
        Numeric(12, 2), nullable=True,
    )

    def __repr__(self) -> str:
        return f"<LabelingBatch {self.product_line}/{self.batch_number}: {self.status}>"
