"""
ORM records for the SQL-backed remote store.

Contract:
    BudgetRecord and LicenseRecord are the collections the console mutates;
    MutationLogRecord remembers every applied idempotency key so a repeated
    request is acknowledged without being applied twice.

Architecture: console_kernel/models.  Imports from console_kernel.db.base only.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import Boolean, DateTime, Index, Integer, String, Text, inspect
from sqlalchemy.orm import Mapped, mapped_column

from console_kernel.db.base import ENTITY_ID_LENGTH, Base, TrackedBase, as_utc

if TYPE_CHECKING:
    from console_kernel.domain.entity import Entity


class BudgetRecord(TrackedBase):
    """A repair-shop budget (quote) and its workflow state."""

    __tablename__ = "budgets"

    __table_args__ = (
        Index("ix_budgets_workflow_status", "workflow_status"),
        Index("ix_budgets_deleted_at", "deleted_at"),
    )

    client_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    device_model: Mapped[str | None] = mapped_column(String(200), nullable=True)
    workflow_status: Mapped[str] = mapped_column(
        String(50), default="pending", nullable=False,
    )
    is_paid: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_delivered: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False,
    )
    approved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    payment_confirmed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    delivery_confirmed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    def to_entity(self) -> Entity:
        from console_kernel.domain.entity import Entity

        return Entity.from_record(record_to_dict(self), entity_type="budget")


class LicenseRecord(TrackedBase):
    """A license assignment, keyed by the licensed user's id."""

    __tablename__ = "user_licenses"

    __table_args__ = (
        Index("ix_user_licenses_status", "status"),
    )

    license_type: Mapped[str] = mapped_column(
        String(50), default="standard", nullable=False,
    )
    status: Mapped[str] = mapped_column(String(50), default="active", nullable=False)
    expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    max_devices: Mapped[int | None] = mapped_column(Integer, nullable=True)
    suspension_reason: Mapped[str | None] = mapped_column(Text, nullable=True)


class MutationLogRecord(Base):
    """Applied idempotency keys; ``id`` is the key itself."""

    __tablename__ = "store_mutations"

    __table_args__ = (
        Index("ix_store_mutations_entity", "entity_type", "entity_id"),
    )

    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(ENTITY_ID_LENGTH), nullable=False)
    action: Mapped[str] = mapped_column(String(20), nullable=False)
    applied_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )


def record_to_dict(record: TrackedBase) -> dict[str, Any]:
    """Column values of a record, timestamps normalized to UTC."""
    values: dict[str, Any] = {}
    for column in inspect(record).mapper.column_attrs:
        value = getattr(record, column.key)
        if isinstance(value, datetime):
            value = as_utc(value)
        values[column.key] = value
    return values
