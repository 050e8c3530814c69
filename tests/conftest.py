"""
Pytest fixtures for the console core test suite.

Provides:
- Logging reset between tests
- A deterministic clock
- A scripted in-memory RemoteStore and a gateway over it
- Orchestrator/state-machine factories with short timeouts
"""

import pytest

from console_config.schema import BulkLimits, EngineSettings
from console_kernel.domain.clock import DeterministicClock
from console_kernel.logging_config import LogContext, reset_logging
from console_kernel.services.action_gateway import ActionGateway
from console_kernel.services.workflow_state_machine import WorkflowStateMachine
from console_batch.services.orchestrator import BulkOperationOrchestrator
from console_batch.services.progress import OperationProgressTracker
from console_batch.tasks.base import OperationRegistry

from tests.fakes import FIXED_NOW, ScriptedStore, TouchHandler


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock(FIXED_NOW)


@pytest.fixture
def store() -> ScriptedStore:
    return ScriptedStore()


@pytest.fixture
def gateway(store) -> ActionGateway:
    return ActionGateway(store, default_timeout=2.0)


@pytest.fixture
def state_machine(gateway, clock) -> WorkflowStateMachine:
    return WorkflowStateMachine(gateway, clock=clock)


@pytest.fixture
def registry() -> OperationRegistry:
    registry = OperationRegistry()
    registry.register(TouchHandler())
    return registry


@pytest.fixture
def make_orchestrator(gateway, registry, clock):
    """Factory: orchestrator with EngineSettings overrides."""
    created: list[BulkOperationOrchestrator] = []

    def _make(
        concurrency: int = 4,
        gateway_timeout_ms: int = 2000,
        batch_timeout_ms: int | None = None,
        limits: BulkLimits | None = None,
        tracker: OperationProgressTracker | None = None,
    ) -> BulkOperationOrchestrator:
        settings = EngineSettings(
            concurrency=concurrency,
            gateway_timeout_ms=gateway_timeout_ms,
            batch_timeout_ms=batch_timeout_ms,
            bulk_limits=limits or BulkLimits(),
        )
        orchestrator = BulkOperationOrchestrator(
            gateway=gateway,
            registry=registry,
            settings=settings,
            clock=clock,
            tracker=tracker,
        )
        created.append(orchestrator)
        return orchestrator

    yield _make
    for orchestrator in created:
        orchestrator.shutdown(timeout=5)
