"""
Test doubles shared across the suite.

ScriptedStore is a RemoteStore whose behaviour per entity id is scripted:
raise a given exception, sleep, or block on a gate until the test
releases it.  It records every request in arrival order.
"""

from __future__ import annotations

import threading
import time
from datetime import datetime, timezone
from typing import Any, Callable, Mapping

from console_kernel.domain.gateway import GatewayAction, GatewayRequest

FIXED_NOW = datetime(2024, 6, 1, 9, 30, 0, tzinfo=timezone.utc)


class ScriptedStore:
    """In-memory RemoteStore with scripted failures, delays and gates."""

    def __init__(self, default_delay: float = 0.0):
        self._lock = threading.Lock()
        self._default_delay = default_delay
        self._failures: dict[str, Exception] = {}
        self._delays: dict[str, float] = {}
        self._gates: dict[str, threading.Event] = {}
        self.requests: list[GatewayRequest] = []
        self.completed: list[str] = []
        self.active = 0
        self.max_active = 0

    # -- scripting ----------------------------------------------------------

    def fail(self, entity_id: str, exc: Exception) -> None:
        self._failures[entity_id] = exc

    def delay(self, entity_id: str, seconds: float) -> None:
        self._delays[entity_id] = seconds

    def hold(self, *entity_ids: str) -> threading.Event:
        """Block calls for ``entity_ids`` until the returned event is set."""
        gate = threading.Event()
        for entity_id in entity_ids:
            self._gates[entity_id] = gate
        return gate

    # -- inspection ---------------------------------------------------------

    @property
    def request_ids(self) -> list[str]:
        with self._lock:
            return [r.entity_id for r in self.requests]

    def calls_for(self, entity_id: str) -> int:
        with self._lock:
            return sum(1 for r in self.requests if r.entity_id == entity_id)

    # -- RemoteStore --------------------------------------------------------

    def apply(self, request: GatewayRequest) -> Mapping[str, Any] | None:
        with self._lock:
            self.requests.append(request)
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            gate = self._gates.get(request.entity_id)
            if gate is not None:
                gate.wait(10)
            delay = self._delays.get(request.entity_id, self._default_delay)
            if delay:
                time.sleep(delay)
            exc = self._failures.get(request.entity_id)
            if exc is not None:
                raise exc
            return {"id": request.entity_id, **request.patch}
        finally:
            with self._lock:
                self.active -= 1
                self.completed.append(request.entity_id)


class TouchHandler:
    """Minimal handler: one UPDATE per target with an optional marker."""

    def __init__(self, operation_type: str = "test.touch", entity_type: str = "budget"):
        self._operation_type = operation_type
        self._entity_type = entity_type

    @property
    def operation_type(self) -> str:
        return self._operation_type

    @property
    def entity_type(self) -> str:
        return self._entity_type

    @property
    def description(self) -> str:
        return "Touch each target"

    def validate_payload(self, payload: Mapping[str, Any]) -> None:
        return None

    def build_request(
        self, target_id: str, payload: Mapping[str, Any], as_of: datetime,
    ) -> GatewayRequest:
        return GatewayRequest(
            entity_type=self._entity_type,
            entity_id=target_id,
            action=GatewayAction.UPDATE,
            patch={"touched_at": as_of.isoformat(), **payload},
        )


def wait_until(predicate: Callable[[], bool], timeout: float = 5.0) -> bool:
    """Poll ``predicate`` until true or ``timeout`` elapses."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()
