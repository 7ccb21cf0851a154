"""Database layer - engine, base classes and measurement coercion."""

from harvest_kernel.db.base import Base, TrackedBase, UUIDString
from harvest_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    session_scope,
)
from harvest_kernel.db.types import to_measurement

__all__ = [
    "get_engine",
    "get_session",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "to_measurement",
]
