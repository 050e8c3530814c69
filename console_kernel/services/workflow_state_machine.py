"""
WorkflowStateMachine -- optimistic entity transitions with rollback.

Responsibility:
    Validates a named transition against the entity's status and flags,
    publishes the candidate snapshot immediately, issues exactly one
    gateway call carrying the same patch, and then either confirms the
    candidate or restores the last confirmed snapshot.

Architecture position:
    Kernel > Services.  Depends on the ActionGateway for I/O and on
    ``console_kernel.domain.workflow`` for the lifecycle definition.

Invariants enforced:
    - ``available_transitions`` and ``transition`` evaluate the same guard.
    - An invalid transition raises before any snapshot or I/O changes.
    - A failed or timed-out call restores exactly the pre-transition value.
    - At most one unconfirmed transition per entity.
    - No retries.

Failure modes:
    - InvalidTransitionError (synchronous).
    - TransitionInProgressError (synchronous).
    - Remote failures are reported in ``TransitionOutcome.error``.
"""

from __future__ import annotations

import contextvars
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from console_kernel.domain.clock import Clock, SystemClock
from console_kernel.domain.entity import Entity, to_wire
from console_kernel.domain.gateway import (
    GatewayAction,
    GatewayError,
    GatewayErrorKind,
    GatewayRequest,
    GatewayResult,
)
from console_kernel.domain.snapshots import SnapshotPair
from console_kernel.domain.workflow import (
    BUDGET_WORKFLOW,
    WorkflowDefinition,
    WorkflowTransition,
)
from console_kernel.exceptions import (
    InvalidTransitionError,
    TransitionInProgressError,
)
from console_kernel.logging_config import LogContext, get_logger
from console_kernel.services.action_gateway import ActionGateway

logger = get_logger("services.workflow_state_machine")


class TransitionPhase(str, Enum):
    OPTIMISTIC = "optimistic"
    CONFIRMED = "confirmed"
    ROLLED_BACK = "rolled_back"


ChangeCallback = Callable[[Entity, TransitionPhase], None]


@dataclass(frozen=True)
class TransitionOutcome:
    """Result of one transition.

    ``entity`` is the confirmed snapshot after settlement: the candidate on
    success, the original on failure.  ``optimistic`` is what was shown
    while the call was in flight.
    """

    transition: str
    success: bool
    entity: Entity
    optimistic: Entity
    error: GatewayError | None = None
    duration_ms: float = 0.0

    @property
    def error_kind(self) -> GatewayErrorKind | None:
        return self.error.kind if self.error is not None else None


class PendingTransition:
    """Handle for a transition whose gateway call may still be running."""

    def __init__(self, entity_id: str, transition: str, optimistic: Entity):
        self.entity_id = entity_id
        self.transition = transition
        self._optimistic = optimistic
        self._done = threading.Event()
        self._outcome: TransitionOutcome | None = None

    @property
    def optimistic(self) -> Entity:
        return self._optimistic

    def done(self) -> bool:
        return self._done.is_set()

    def result(self, timeout: float | None = None) -> TransitionOutcome:
        if not self._done.wait(timeout):
            raise TimeoutError(
                f"Transition '{self.transition}' on {self.entity_id} not settled "
                f"within {timeout}s"
            )
        assert self._outcome is not None
        return self._outcome

    def _resolve(self, outcome: TransitionOutcome) -> None:
        self._outcome = outcome
        self._done.set()


@dataclass
class _InFlight:
    pair: SnapshotPair[Entity]
    transition: str


class WorkflowStateMachine:
    """Applies lifecycle transitions optimistically through the gateway."""

    def __init__(
        self,
        gateway: ActionGateway,
        workflow: WorkflowDefinition = BUDGET_WORKFLOW,
        clock: Clock | None = None,
        call_timeout: float | None = None,
    ):
        self._gateway = gateway
        self._workflow = workflow
        self._clock = clock or SystemClock()
        self._call_timeout = call_timeout
        self._lock = threading.Lock()
        self._in_flight: dict[tuple[str, str], _InFlight] = {}

    @property
    def workflow(self) -> WorkflowDefinition:
        return self._workflow

    def available_transitions(self, entity: Entity) -> frozenset[str]:
        return self._workflow.available(entity)

    def working_view(self, entity_type: str, entity_id: str) -> Entity | None:
        """The optimistic snapshot while a transition is pending, else None."""
        with self._lock:
            in_flight = self._in_flight.get((entity_type, entity_id))
            return in_flight.pair.working if in_flight is not None else None

    def is_pending(self, entity_type: str, entity_id: str) -> bool:
        with self._lock:
            return (entity_type, entity_id) in self._in_flight

    def transition(
        self,
        entity: Entity,
        transition_name: str,
        *,
        on_change: ChangeCallback | None = None,
    ) -> TransitionOutcome:
        """Apply a transition and block until the store confirms or fails."""
        return self.begin_transition(
            entity, transition_name, on_change=on_change
        ).result()

    def begin_transition(
        self,
        entity: Entity,
        transition_name: str,
        *,
        on_change: ChangeCallback | None = None,
    ) -> PendingTransition:
        """Publish the candidate and start the gateway call.

        Returns immediately.  ``on_change`` receives the candidate with
        phase ``optimistic`` before this method returns, then exactly one of
        ``confirmed`` or ``rolled_back`` from the settling thread.
        """
        transition = self._resolve(entity, transition_name)
        patch = transition.build_patch(entity, self._clock.now())
        candidate = entity.apply_patch(patch)

        key = (entity.entity_type, entity.id)
        pair = SnapshotPair(entity)
        with self._lock:
            existing = self._in_flight.get(key)
            if existing is not None:
                raise TransitionInProgressError(entity.id, existing.transition)
            pair.propose(candidate)
            self._in_flight[key] = _InFlight(pair=pair, transition=transition_name)

        pending = PendingTransition(entity.id, transition_name, candidate)
        logger.info(
            "workflow_transition_started",
            extra={
                "workflow": self._workflow.name,
                "entity_type": entity.entity_type,
                "entity_id": entity.id,
                "transition": transition_name,
                "from_status": entity.workflow_status.value,
                "to_status": candidate.workflow_status.value,
            },
        )
        self._notify(on_change, candidate, TransitionPhase.OPTIMISTIC)

        request = GatewayRequest(
            entity_type=entity.entity_type,
            entity_id=entity.id,
            action=GatewayAction.UPDATE,
            patch=to_wire(patch),
        )
        ctx = contextvars.copy_context()
        thread = threading.Thread(
            target=ctx.run,
            args=(self._settle, key, transition, request, pending, on_change),
            name=f"transition-{entity.id}",
            daemon=True,
        )
        thread.start()
        return pending

    def _resolve(self, entity: Entity, transition_name: str) -> WorkflowTransition:
        transition = self._workflow.get(transition_name)
        if transition is None or not transition.allows(entity):
            raise InvalidTransitionError(
                entity_id=entity.id,
                current_status=entity.workflow_status.value,
                transition_name=transition_name,
                available=tuple(sorted(self.available_transitions(entity))),
            )
        return transition

    def _settle(
        self,
        key: tuple[str, str],
        transition: WorkflowTransition,
        request: GatewayRequest,
        pending: PendingTransition,
        on_change: ChangeCallback | None,
    ) -> None:
        started = time.monotonic()
        with LogContext.bind(entity_id=request.entity_id):
            try:
                result = self._gateway.invoke(request, timeout=self._call_timeout)
            except Exception as exc:
                logger.exception("workflow_transition_gateway_crashed")
                result = GatewayResult.failure(
                    request,
                    GatewayErrorKind.REJECTED,
                    str(exc) or type(exc).__name__,
                    "UNHANDLED_EXCEPTION",
                )

            with self._lock:
                in_flight = self._in_flight.pop(key)
                original = in_flight.pair.confirmed
                optimistic = in_flight.pair.working
                if result.ok:
                    final = in_flight.pair.confirm()
                else:
                    final = in_flight.pair.rollback()

            duration_ms = (time.monotonic() - started) * 1000
            outcome = TransitionOutcome(
                transition=transition.name,
                success=result.ok,
                entity=final,
                optimistic=optimistic,
                error=result.error,
                duration_ms=duration_ms,
            )
            self._emit_trace(original, outcome)
            self._notify(
                on_change,
                final,
                TransitionPhase.CONFIRMED if result.ok else TransitionPhase.ROLLED_BACK,
            )
            pending._resolve(outcome)

    def _emit_trace(self, original: Entity, outcome: TransitionOutcome) -> None:
        extra = {
            "workflow": self._workflow.name,
            "entity_type": original.entity_type,
            "entity_id": original.id,
            "transition": outcome.transition,
            "from_status": original.workflow_status.value,
            "to_status": outcome.entity.workflow_status.value,
            "outcome": "confirmed" if outcome.success else "rolled_back",
            "duration_ms": round(outcome.duration_ms, 3),
        }
        if outcome.error is not None:
            extra["error_kind"] = outcome.error.kind.value
            extra["error_code"] = outcome.error.code
            logger.warning("workflow_transition", extra=extra)
        else:
            logger.info("workflow_transition", extra=extra)

    @staticmethod
    def _notify(
        on_change: ChangeCallback | None,
        entity: Entity,
        phase: TransitionPhase,
    ) -> None:
        if on_change is None:
            return
        try:
            on_change(entity, phase)
        except Exception:
            logger.exception(
                "workflow_change_callback_failed",
                extra={"entity_id": entity.id, "phase": phase.value},
            )
