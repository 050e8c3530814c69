"""
Entity -- the workflow-bearing record a console user acts on.

A budget (repair-shop quote) moves through ``pending -> approved ->
completed`` while payment and delivery are confirmed independently.  The
kernel only ever holds immutable snapshots of it; the remote store is the
source of truth.
"""

from dataclasses import dataclass, fields, replace
from datetime import datetime
from enum import Enum
from typing import Any, Mapping


class WorkflowStatus(str, Enum):
    """Lifecycle status of an entity."""

    PENDING = "pending"
    APPROVED = "approved"
    COMPLETED = "completed"


FLAG_FIELDS: tuple[str, ...] = ("is_paid", "is_delivered")

TIMESTAMP_FIELDS: tuple[str, ...] = (
    "approved_at",
    "payment_confirmed_at",
    "delivery_confirmed_at",
)


@dataclass(frozen=True)
class Entity:
    """Immutable snapshot of a workflow entity.

    ``completed`` implies ``is_paid`` and ``is_delivered``; the transitions
    in ``console_kernel.domain.workflow`` never produce a snapshot that
    breaks this, and ``is_consistent()`` checks it for snapshots that come
    from elsewhere.
    """

    id: str
    workflow_status: WorkflowStatus = WorkflowStatus.PENDING
    is_paid: bool = False
    is_delivered: bool = False
    approved_at: datetime | None = None
    payment_confirmed_at: datetime | None = None
    delivery_confirmed_at: datetime | None = None
    entity_type: str = "budget"

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("Entity id must be non-empty")
        if not isinstance(self.workflow_status, WorkflowStatus):
            object.__setattr__(
                self, "workflow_status", WorkflowStatus(self.workflow_status)
            )

    def flag(self, name: str) -> bool:
        if name not in FLAG_FIELDS:
            raise ValueError(f"Unknown entity flag: {name}")
        return bool(getattr(self, name))

    def is_consistent(self) -> bool:
        if self.workflow_status == WorkflowStatus.COMPLETED:
            return self.is_paid and self.is_delivered
        return True

    def apply_patch(self, patch: Mapping[str, Any]) -> "Entity":
        """Return a copy with the patched fields replaced."""
        unknown = set(patch) - _PATCHABLE_FIELDS
        if unknown:
            raise ValueError(
                f"Cannot patch entity fields: {', '.join(sorted(unknown))}"
            )
        return replace(self, **dict(patch))

    @classmethod
    def from_record(
        cls,
        record: Mapping[str, Any],
        entity_type: str = "budget",
    ) -> "Entity":
        """Build a snapshot from a store row (wire or ORM dict form)."""
        return cls(
            id=str(record["id"]),
            workflow_status=WorkflowStatus(
                record.get("workflow_status") or WorkflowStatus.PENDING
            ),
            is_paid=bool(record.get("is_paid", False)),
            is_delivered=bool(record.get("is_delivered", False)),
            approved_at=parse_timestamp(record.get("approved_at")),
            payment_confirmed_at=parse_timestamp(
                record.get("payment_confirmed_at")
            ),
            delivery_confirmed_at=parse_timestamp(
                record.get("delivery_confirmed_at")
            ),
            entity_type=entity_type,
        )


_PATCHABLE_FIELDS = frozenset(
    f.name for f in fields(Entity) if f.name not in ("id", "entity_type")
)


def parse_timestamp(value: Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def to_wire(patch: Mapping[str, Any]) -> dict[str, Any]:
    """Render a patch as JSON-safe values (enum values, ISO-8601 times)."""
    wire: dict[str, Any] = {}
    for key, value in patch.items():
        if isinstance(value, Enum):
            wire[key] = value.value
        elif isinstance(value, datetime):
            wire[key] = value.isoformat()
        else:
            wire[key] = value
    return wire
