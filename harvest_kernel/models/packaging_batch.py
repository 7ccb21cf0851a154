"""
Module: harvest_kernel.models.packaging_batch
Responsibility: ORM persistence for packaging batches, each derived from
    exactly one completed processing batch.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - UNIQUE(source_batch_id): at most one packaging batch per processing
      batch (uq_packaging_source).  Backstop for the Pipeline Linker.
    - Deleting the source processing batch deletes this row
      (ON DELETE CASCADE).
    - UNIQUE(product_line, batch_number).

Material columns exist for every packaging material of every product line;
a line only records the materials its profile lists.
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


class PackagingBatch(TrackedBase):
    """Packaging of one processing batch's output."""

    __tablename__ = "packaging_batches"

    __table_args__ = (
        UniqueConstraint("source_batch_id", name="uq_packaging_source"),
        UniqueConstraint(
            "product_line", "batch_number",
            name="uq_packaging_batch_number",
        ),
        Index("idx_packaging_line_status", "product_line", "status"),
    )

    source_batch_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("processing_batches.id", ondelete="CASCADE"),
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

    # Bottles filled / blocks wrapped
    finished_quantity: Mapped[Decimal | None] = mapped_column(
        Numeric(14, 3), nullable=True,
    )

    # sap
    bottle_quantity: Mapped[Decimal | None] = mapped_column(Numeric(14, 3), nullable=True)
    bottle_cost: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    lid_quantity: Mapped[Decimal | None] = mapped_column(Numeric(14, 3), nullable=True)
    lid_cost: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)

    # treacle
    alufoil_quantity: Mapped[Decimal | None] = mapped_column(Numeric(14, 3), nullable=True)
    alufoil_cost: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    vacuum_bag_quantity: Mapped[Decimal | None] = mapped_column(Numeric(14, 3), nullable=True)
    vacuum_bag_cost: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    parchment_paper_quantity: Mapped[Decimal | None] = mapped_column(
        Numeric(14, 3), nullable=True,
    )
    parchment_paper_cost: Mapped[Decimal | None] = mapped_column(
        Numeric(12, 2), nullable=True,
    )

    def __repr__(self) -> str:
        return f"<PackagingBatch {self.product_line}/{self.batch_number}: {self.status}>"
