"""
Module: harvest_kernel.models.collection_draft
Responsibility: ORM persistence for a day's field collection of one product
    line.  Drafts are the origin of raw units; their own approval workflow
    lives outside the engine.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - A draft belongs to exactly one product line; every unit recorded
      against it carries the same line (checked by UnitLedger).
"""

from datetime import date
from enum import Enum

from sqlalchemy import Date, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from harvest_kernel.db.base import TrackedBase


class DraftStatus(str, Enum):
    """Collection draft status.  Only ``completed`` matters to the engine."""

    DRAFT = "draft"
    SUBMITTED = "submitted"
    COMPLETED = "completed"


class CollectionDraft(TrackedBase):
    """
    One collection day for one product line.

    Guarantees:
        - collected_on is the calendar date the units were collected.
        - Units of a ``completed`` draft are excluded from active-only
          free-unit listings.
    """

    __tablename__ = "collection_drafts"

    __table_args__ = (
        Index("idx_draft_line_date", "product_line", "collected_on"),
    )

    product_line: Mapped[str] = mapped_column(String(20), nullable=False)

    collected_on: Mapped[date] = mapped_column(Date, nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        default=DraftStatus.DRAFT.value,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<CollectionDraft {self.product_line} {self.collected_on}: {self.status}>"
