"""Database layer - engine, base classes and types."""

from validation_kernel.db.base import UUID, Base, UTCDateTime, UUIDString
from validation_kernel.db.engine import (
    build_engine,
    create_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    session_scope,
)

__all__ = [
    "build_engine",
    "create_tables",
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_engine_from_url",
    "session_scope",
    "Base",
    "UTCDateTime",
    "UUIDString",
    "UUID",
]
