"""
Module: console_kernel.db.base
Responsibility: Declarative base classes for the ORM records behind
    ``SqlEntityStore``.  Provides the opaque string primary key convention,
    the type annotation map, and the TrackedBase mixin for row timestamps.
Architecture position: Kernel > DB.  Lowest-level import target for
    models/.  MUST NOT import from models/, services/ or domain/.

Invariants enforced:
    - Entity ids are opaque strings supplied by the caller (the console
      never invents ids for existing records).
    - datetime columns are timezone-aware where the dialect supports it;
      ``as_utc`` normalizes naive values read back from SQLite.
"""

from datetime import datetime, timezone
from typing import ClassVar

from sqlalchemy import DateTime, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

ENTITY_ID_LENGTH = 64


class Base(DeclarativeBase):
    """
    Declarative base for all ORM records.

    Guarantees:
        - id is an opaque String(64) primary key.
        - datetime maps to DateTime(timezone=True).
    """

    type_annotation_map: ClassVar[dict] = {
        datetime: DateTime(timezone=True),
        str: String(255),
    }

    id: Mapped[str] = mapped_column(String(ENTITY_ID_LENGTH), primary_key=True)


class TrackedBase(Base):
    """Abstract base with row creation and modification timestamps."""

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


def as_utc(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)
