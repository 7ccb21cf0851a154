"""
Declarative bases for the harvest ORM models.

Every table gets a uuid4 primary key stored as ``String(36)`` so the same
schema runs on PostgreSQL and on SQLite.  Batch tables also inherit
``TrackedBase``: who created and last changed the row, and when.

Column type conventions (``Base.type_annotation_map``):
    Decimal  -> Numeric(14, 3)   quantities; costs override with Numeric(12, 2)
    datetime -> DateTime(timezone=True)
    UUID     -> UUIDString

No module here imports from models, services or selectors.
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """``uuid.UUID`` on the Python side, 36-character text in the database."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else PyUUID(value)


class Base(DeclarativeBase):
    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(14, 3),
        datetime: DateTime(timezone=True),
        PyUUID: UUIDString(),
    }

    id: Mapped[PyUUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    """
    Abstract base adding audit columns.

    ``created_at``/``updated_at`` are filled by the database (``now()``);
    ``created_by_id`` is mandatory, ``updated_by_id`` stays NULL until the
    first change made through a service.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
    created_by_id: Mapped[PyUUID] = mapped_column(UUIDString(), nullable=False)
    updated_by_id: Mapped[PyUUID | None] = mapped_column(UUIDString(), nullable=True)
