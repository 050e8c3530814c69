"""
OperationHandler protocol and OperationRegistry.

Contract:
    ``OperationHandler`` turns one ``(target_id, payload)`` pair into exactly
    one ``GatewayRequest``.  ``OperationRegistry`` stores handlers keyed by
    ``operation_type``.  ``default_operation_registry()`` returns a registry
    pre-loaded with the license and budget handlers.

Architecture:
    console_batch/tasks.  Imports only console_kernel domain types and
    exceptions; no I/O happens in a handler.

Invariants enforced:
    - One handler per ``operation_type`` string.
    - ``validate_payload`` runs once at submit; ``build_request`` runs per
      unit and must not perform I/O.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Protocol, runtime_checkable

from console_kernel.domain.gateway import GatewayRequest
from console_kernel.exceptions import UnknownOperationTypeError


# =============================================================================
# OperationHandler Protocol
# =============================================================================


@runtime_checkable
class OperationHandler(Protocol):
    """Protocol every bulk operation type implements.

    Contract:
        - ``operation_type``: unique key registered in OperationRegistry.
        - ``entity_type``: collection the requests target.
        - ``description``: human-readable label for UI / logs.
        - ``validate_payload()``: raises InvalidPayloadError when unusable.
        - ``build_request()``: one request for one target.

    Non-goals:
        - Does NOT call the gateway -- the orchestrator owns dispatch.
        - Does NOT retry.
    """

    @property
    def operation_type(self) -> str: ...

    @property
    def entity_type(self) -> str: ...

    @property
    def description(self) -> str: ...

    def validate_payload(self, payload: Mapping[str, Any]) -> None: ...

    def build_request(
        self,
        target_id: str,
        payload: Mapping[str, Any],
        as_of: datetime,
    ) -> GatewayRequest:
        """Build the request for one target.

        Args:
            target_id: The entity id this unit acts on.
            payload: Operation payload, already validated.
            as_of: Clock-injected timestamp for determinism.
        """
        ...


def operation_key(operation_type: str | Enum) -> str:
    """Registry key for a type given as a string or an OperationType."""
    if isinstance(operation_type, Enum):
        return str(operation_type.value)
    return str(operation_type)


# =============================================================================
# OperationRegistry
# =============================================================================


class OperationRegistry:
    """Registry mapping operation_type strings to handlers.

    Contract:
        - ``register()`` adds a handler; raises ValueError on duplicate.
        - ``get()`` retrieves by type; raises UnknownOperationTypeError.
        - ``list_types()`` returns all registered types, sorted.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, OperationHandler] = {}

    def register(self, handler: OperationHandler) -> None:
        key = operation_key(handler.operation_type)
        if key in self._handlers:
            raise ValueError(f"Operation type '{key}' is already registered")
        self._handlers[key] = handler

    def get(self, operation_type: str | Enum) -> OperationHandler:
        key = operation_key(operation_type)
        try:
            return self._handlers[key]
        except KeyError:
            raise UnknownOperationTypeError(key, self.list_types()) from None

    def list_types(self) -> tuple[str, ...]:
        return tuple(sorted(self._handlers))

    def __len__(self) -> int:
        return len(self._handlers)

    def __contains__(self, operation_type: object) -> bool:
        if not isinstance(operation_type, (str, Enum)):
            return False
        return operation_key(operation_type) in self._handlers


def default_operation_registry() -> OperationRegistry:
    """Create a registry holding every handler shipped with the console."""
    from console_batch.tasks.budget_tasks import BUDGET_HANDLERS
    from console_batch.tasks.license_tasks import LICENSE_HANDLERS

    registry = OperationRegistry()
    for handler in LICENSE_HANDLERS + BUDGET_HANDLERS:
        registry.register(handler)
    return registry
