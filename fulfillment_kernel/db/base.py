"""
Declarative base shared by every fulfillment model.

Column conventions come from the annotation map, so a model only writes
``Mapped[Decimal]`` or ``Mapped[datetime]`` and gets the right type:

    Decimal  -> Numeric(38, 9)   activity, QC bounds and money; never float
    datetime -> DateTime(timezone=True)
    UUID     -> String(36)       portable between PostgreSQL and SQLite
    int      -> BigInteger       sequence values

Nothing here may import models, services or selectors.
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, DateTime, Numeric, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """``uuid.UUID`` in Python, 36-character text in the database."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else PyUUID(value)


class Base(DeclarativeBase):
    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, 9),
        datetime: DateTime(timezone=True),
        PyUUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[PyUUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


UUID = PyUUID
