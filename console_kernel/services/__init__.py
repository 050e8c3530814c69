"""
Kernel services: the action gateway, the workflow state machine, and the
remote store adapters the gateway talks to.
"""

from console_kernel.services.action_gateway import (
    DEFAULT_TIMEOUT_SECONDS,
    ActionGateway,
    RemoteStore,
)
from console_kernel.services.workflow_state_machine import (
    PendingTransition,
    TransitionOutcome,
    TransitionPhase,
    WorkflowStateMachine,
)

__all__ = [
    "DEFAULT_TIMEOUT_SECONDS",
    "ActionGateway",
    "PendingTransition",
    "RemoteStore",
    "TransitionOutcome",
    "TransitionPhase",
    "WorkflowStateMachine",
]
