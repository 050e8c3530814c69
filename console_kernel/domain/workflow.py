"""
Canonical workflow types (``console_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects describing an entity lifecycle: named transitions,
their guards (source statuses plus required/forbidden flags) and their
side effects (target status, flags set, timestamps stamped).  The
``WorkflowStateMachine`` service evaluates these; nothing here performs I/O.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* Transitions reference only statuses in ``WorkflowDefinition.statuses``.
* Transition names are unique within a definition.
* No transition leaves a terminal status.
* No transition clears a flag; flags only move ``False -> True``.
* ``available()`` and ``get(name).allows()`` are the same guard.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from console_kernel.domain.entity import (
    FLAG_FIELDS,
    TIMESTAMP_FIELDS,
    Entity,
    WorkflowStatus,
)
from console_kernel.exceptions import WorkflowDefinitionError


@dataclass(frozen=True)
class WorkflowTransition:
    """A named edge of the entity lifecycle.

    Contract: frozen.  ``stamps`` lists timestamp fields set to the
    transition time when they are still unset, so an earlier confirmation
    time survives a later ``complete``.
    """

    name: str
    source_statuses: frozenset[WorkflowStatus]
    target_status: WorkflowStatus
    requires_flags: tuple[str, ...] = ()
    forbids_flags: tuple[str, ...] = ()
    sets_flags: tuple[str, ...] = ()
    stamps: tuple[str, ...] = ()
    description: str = ""

    def allows(self, entity: Entity) -> bool:
        if entity.workflow_status not in self.source_statuses:
            return False
        if not all(entity.flag(f) for f in self.requires_flags):
            return False
        return not any(entity.flag(f) for f in self.forbids_flags)

    def build_patch(self, entity: Entity, now: datetime) -> dict[str, Any]:
        """Fields this transition changes on ``entity``, as domain values."""
        patch: dict[str, Any] = {}
        if entity.workflow_status != self.target_status:
            patch["workflow_status"] = self.target_status
        for flag in self.sets_flags:
            if not entity.flag(flag):
                patch[flag] = True
        for stamp in self.stamps:
            if getattr(entity, stamp) is None:
                patch[stamp] = now
        return patch

    def apply(self, entity: Entity, now: datetime) -> Entity:
        return entity.apply_patch(self.build_patch(entity, now))


@dataclass(frozen=True)
class WorkflowDefinition:
    """A lifecycle definition for one entity type.

    Contract: frozen and validated at construction.
    """

    name: str
    description: str
    initial_status: WorkflowStatus
    statuses: tuple[WorkflowStatus, ...]
    transitions: tuple[WorkflowTransition, ...]
    terminal_statuses: tuple[WorkflowStatus, ...] = ()

    def __post_init__(self) -> None:
        if self.initial_status not in self.statuses:
            raise WorkflowDefinitionError(
                self.name, f"initial status {self.initial_status.value} is undeclared"
            )
        seen: set[str] = set()
        for transition in self.transitions:
            if transition.name in seen:
                raise WorkflowDefinitionError(
                    self.name, f"duplicate transition '{transition.name}'"
                )
            seen.add(transition.name)
            referenced = set(transition.source_statuses) | {transition.target_status}
            undeclared = referenced - set(self.statuses)
            if undeclared:
                raise WorkflowDefinitionError(
                    self.name,
                    f"transition '{transition.name}' references undeclared "
                    f"statuses {sorted(s.value for s in undeclared)}",
                )
            if set(transition.source_statuses) & set(self.terminal_statuses):
                raise WorkflowDefinitionError(
                    self.name,
                    f"transition '{transition.name}' leaves a terminal status",
                )
            for flag in (
                transition.requires_flags
                + transition.forbids_flags
                + transition.sets_flags
            ):
                if flag not in FLAG_FIELDS:
                    raise WorkflowDefinitionError(
                        self.name,
                        f"transition '{transition.name}' uses unknown flag '{flag}'",
                    )
            for stamp in transition.stamps:
                if stamp not in TIMESTAMP_FIELDS:
                    raise WorkflowDefinitionError(
                        self.name,
                        f"transition '{transition.name}' stamps unknown field '{stamp}'",
                    )

    def get(self, name: str) -> WorkflowTransition | None:
        for transition in self.transitions:
            if transition.name == name:
                return transition
        return None

    def available(self, entity: Entity) -> frozenset[str]:
        return frozenset(t.name for t in self.transitions if t.allows(entity))

    def is_terminal(self, status: WorkflowStatus) -> bool:
        return status in self.terminal_statuses


# ---------------------------------------------------------------------------
# Budget lifecycle
# ---------------------------------------------------------------------------

APPROVE = WorkflowTransition(
    name="approve",
    source_statuses=frozenset({WorkflowStatus.PENDING}),
    target_status=WorkflowStatus.APPROVED,
    stamps=("approved_at",),
    description="Customer accepted the quote",
)

MARK_PAID = WorkflowTransition(
    name="mark_paid",
    source_statuses=frozenset({WorkflowStatus.APPROVED}),
    target_status=WorkflowStatus.APPROVED,
    forbids_flags=("is_paid",),
    sets_flags=("is_paid",),
    stamps=("payment_confirmed_at",),
    description="Payment received",
)

MARK_DELIVERED = WorkflowTransition(
    name="mark_delivered",
    source_statuses=frozenset({WorkflowStatus.APPROVED}),
    target_status=WorkflowStatus.APPROVED,
    requires_flags=("is_paid",),
    forbids_flags=("is_delivered",),
    sets_flags=("is_delivered",),
    stamps=("delivery_confirmed_at",),
    description="Device handed back to the customer",
)

COMPLETE = WorkflowTransition(
    name="complete",
    source_statuses=frozenset({WorkflowStatus.APPROVED}),
    target_status=WorkflowStatus.COMPLETED,
    sets_flags=("is_paid", "is_delivered"),
    stamps=("payment_confirmed_at", "delivery_confirmed_at"),
    description="Close the job: paid and delivered",
)

BUDGET_WORKFLOW = WorkflowDefinition(
    name="budget",
    description="Repair-shop budget lifecycle",
    initial_status=WorkflowStatus.PENDING,
    statuses=(
        WorkflowStatus.PENDING,
        WorkflowStatus.APPROVED,
        WorkflowStatus.COMPLETED,
    ),
    transitions=(APPROVE, MARK_PAID, MARK_DELIVERED, COMPLETE),
    terminal_statuses=(WorkflowStatus.COMPLETED,),
)
