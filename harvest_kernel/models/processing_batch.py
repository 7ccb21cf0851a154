"""
Module: harvest_kernel.models.processing_batch
Responsibility: ORM persistence for processing batches -- the first stage,
    which groups raw units and records what processing consumed and produced.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - UNIQUE(product_line, batch_number): numbers are dense and unique per
      product line (uq_processing_batch_number).
    - status holds a BatchStatus value; only StageService changes it.
    - Measurements are NULL until recorded and never negative.
"""

from datetime import date
from decimal import Decimal

from sqlalchemy import Date, Index, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from harvest_kernel.db.base import TrackedBase

MEASUREMENT_FIELDS: tuple[str, ...] = (
    "total_output",
    "gas_used_kg",
    "gas_cost",
    "labor_cost",
)


class ProcessingBatch(TrackedBase):
    """
    A processing run over a set of raw units.

    Guarantees:
        - Created ``in-progress`` with a fresh batch number.
        - Unit membership lives in batch_unit_assignments, never here.
    """

    __tablename__ = "processing_batches"

    __table_args__ = (
        UniqueConstraint(
            "product_line", "batch_number",
            name="uq_processing_batch_number",
        ),
        Index("idx_processing_line_status", "product_line", "status"),
    )

    batch_number: Mapped[str] = mapped_column(String(20), nullable=False)

    product_line: Mapped[str] = mapped_column(String(20), nullable=False)

    scheduled_date: Mapped[date] = mapped_column(Date, nullable=False)

    status: Mapped[str] = mapped_column(String(20), nullable=False)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Litres of sap / kilograms of treacle out of the run
    total_output: Mapped[Decimal | None] = mapped_column(Numeric(14, 3), nullable=True)

    gas_used_kg: Mapped[Decimal | None] = mapped_column(Numeric(14, 3), nullable=True)

    gas_cost: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)

    labor_cost: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)

    def __repr__(self) -> str:
        return f"<ProcessingBatch {self.product_line}/{self.batch_number}: {self.status}>"
