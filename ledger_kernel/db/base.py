"""
Declarative bases for the ledger schema.

Every table gets a client-generated uuid4 primary key stored as a
36-character string, so the same schema runs on PostgreSQL and on the
in-memory SQLite used by the test suite.  Money columns are Numeric(38, 9)
through the annotation map; no model declares a float.

Unnamed constraints get names from a fixed convention, so foreign keys
such as ``fk_ledgers_group_id_account_groups`` are named the same on
every database.

This module sits below models/, selectors/ and services/ and imports none
of them.
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, DateTime, MetaData, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class UUIDString(TypeDecorator):
    """UUID column stored as its canonical 36-character string.

    Binds accept a ``UUID`` or anything ``UUID()`` parses, so a malformed
    id fails in Python instead of silently matching nothing.
    """

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if not isinstance(value, PyUUID):
            value = PyUUID(str(value))
        return str(value)

    def process_result_value(self, value, dialect):
        return PyUUID(value) if value is not None else None


class Base(DeclarativeBase):
    """Root of every ledger model: uuid4 ``id`` plus the column type map."""

    metadata = MetaData(naming_convention=NAMING_CONVENTION)

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, 9),
        datetime: DateTime(timezone=True),
        PyUUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        primary_key=True,
        default=uuid4,
    )


class TrackedBase(Base):
    """
    Adds who/when columns.

    ``created_by_id`` is required on insert.  Services set
    ``updated_by_id`` whenever they change a row's status, link or
    hierarchy; ``updated_at`` is maintained by the database.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
    created_by_id: Mapped[PyUUID] = mapped_column(nullable=False)
    updated_by_id: Mapped[PyUUID | None] = mapped_column(nullable=True)


UUID = PyUUID
