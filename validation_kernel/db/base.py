"""
Declarative base and portable column types.

Every model gets a uuid4 ``id`` primary key.  Annotated columns map
``Decimal`` to ``Numeric(38, 9)`` (amounts and ladder bounds are never
floats), ``datetime`` to a UTC-aware column and ``UUID`` to a 36-char
string, so the same models run on PostgreSQL and SQLite.

Nothing in here imports models, services or outer layers.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, DateTime, Numeric, String
from sqlalchemy.engine import Dialect
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator[PyUUID]):
    """UUID stored as its canonical 36-character text."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value: PyUUID | str | None, dialect: Dialect) -> str | None:
        return None if value is None else str(value)

    def process_result_value(self, value: Any, dialect: Dialect) -> PyUUID | None:
        return None if value is None else PyUUID(str(value))


class UTCDateTime(TypeDecorator[datetime]):
    """
    Aware datetime in, aware UTC datetime out.

    Naive values are refused on write.  On read, SQLite hands back naive
    values (UTC is re-attached) and PostgreSQL hands back the session
    TimeZone offset (converted to UTC), so a stored instant always reads
    back as the same UTC datetime it was written as.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        if value is not None and value.tzinfo is None:
            raise ValueError(f"naive datetime refused: {value!r}")
        return value

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    type_annotation_map: ClassVar[dict[Any, Any]] = {
        Decimal: Numeric(38, 9),
        datetime: UTCDateTime(),
        PyUUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[PyUUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


UUID = PyUUID
