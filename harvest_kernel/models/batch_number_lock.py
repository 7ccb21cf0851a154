"""
Module: harvest_kernel.models.batch_number_lock
Responsibility: One lockable row per (product line, stage).  Holding it
    FOR UPDATE serializes batch-number allocation for that line and stage.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - UNIQUE(product_line, stage) (uq_batch_number_lock).
    - last_number is informational; the number issued is always computed
      from the batch table so that deleted numbers become reusable.
"""

from sqlalchemy import String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from harvest_kernel.db.base import Base


class BatchNumberLock(Base):
    """Serialization point for batch numbering."""

    __tablename__ = "batch_number_locks"

    __table_args__ = (
        UniqueConstraint("product_line", "stage", name="uq_batch_number_lock"),
    )

    product_line: Mapped[str] = mapped_column(String(20), nullable=False)

    stage: Mapped[str] = mapped_column(String(20), nullable=False)

    last_number: Mapped[str | None] = mapped_column(String(20), nullable=True)

    def __repr__(self) -> str:
        return f"<BatchNumberLock {self.product_line}/{self.stage}: {self.last_number}>"
