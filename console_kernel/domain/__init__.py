"""
Pure domain layer.

Immutable value objects with NO dependencies on the ORM, the network,
threads (apart from the cancellation token's event) or the wall clock.
"""

from console_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from console_kernel.domain.entity import Entity, WorkflowStatus, to_wire
from console_kernel.domain.gateway import (
    CancellationToken,
    GatewayAction,
    GatewayError,
    GatewayErrorKind,
    GatewayRequest,
    GatewayResponse,
    GatewayResult,
)
from console_kernel.domain.snapshots import SnapshotPair
from console_kernel.domain.workflow import (
    BUDGET_WORKFLOW,
    WorkflowDefinition,
    WorkflowTransition,
)

__all__ = [
    "BUDGET_WORKFLOW",
    "CancellationToken",
    "Clock",
    "DeterministicClock",
    "Entity",
    "GatewayAction",
    "GatewayError",
    "GatewayErrorKind",
    "GatewayRequest",
    "GatewayResponse",
    "GatewayResult",
    "SnapshotPair",
    "SystemClock",
    "WorkflowDefinition",
    "WorkflowStatus",
    "WorkflowTransition",
    "to_wire",
]
