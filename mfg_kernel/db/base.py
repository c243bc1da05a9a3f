"""
Module: mfg_kernel.db.base
Responsibility: Declarative base classes for every ORM model of the
    manufacturing core.  Provides the UUID primary key convention, the type
    annotation map that fixes quantity precision, and the TrackedBase mixin
    carrying creation/modification metadata.
Architecture position: Kernel > DB.  Lowest-level import target inside the
    kernel.  MUST NOT import from models/, services/, selectors/ or modules.

Invariants enforced:
    - UUID primary keys (uuid4) on every table.
    - Decimal maps to Numeric(38, 9).  Quantities are never floats.
    - TrackedBase rows always record who created them.

Failure modes:
    - IntegrityError on duplicate primary key (uuid4 collision).
"""

from datetime import date, datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, Date, DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """
    UUID stored as String(36) so the schema runs on SQLite and PostgreSQL.

    Binds UUID -> str and loads str -> UUID.  Plain strings are accepted
    on bind so raw ids coming from callers can be used in filters.
    """

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return str(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return PyUUID(value)


class Base(DeclarativeBase):
    """
    Declarative base for all models.

    - id is a uuid4 stored as String(36).
    - Decimal -> Numeric(38, 9); datetime -> timezone-aware DateTime.
    - int -> BigInteger for counters and sequence values.
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, 9),
        datetime: DateTime(timezone=True),
        date: Date,
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
    Abstract base with creation/modification timestamps and actors.

    created_at/created_by_id are set once.  updated_at follows every UPDATE.
    These columns are metadata and may change even on rows whose business
    fields are otherwise frozen (see db/immutability.py).
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    created_by_id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    updated_by_id: Mapped[PyUUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )


# Re-export UUID for convenience
UUID = PyUUID
