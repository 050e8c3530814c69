"""
OperationsConsole -- composition root for the console core.

Contract:
    Wires a RemoteStore into one ActionGateway shared by the
    WorkflowStateMachine and the BulkOperationOrchestrator, with one Clock,
    one OperationProgressTracker, and one EngineSettings.  Single place
    where all console dependencies are composed.

Architecture: console_batch (top-level).  The kernel never imports from
    here; settings are translated into plain values on the way down.
"""

from __future__ import annotations

from typing import Mapping

from console_config import get_active_settings
from console_config.schema import EngineSettings
from console_kernel.domain.clock import Clock, SystemClock
from console_kernel.domain.workflow import BUDGET_WORKFLOW, WorkflowDefinition
from console_kernel.logging_config import configure_logging, get_logger
from console_kernel.services.action_gateway import ActionGateway, RemoteStore
from console_kernel.services.workflow_state_machine import WorkflowStateMachine

from console_batch.services.orchestrator import BulkOperationOrchestrator
from console_batch.services.progress import OperationProgressTracker
from console_batch.tasks.base import OperationRegistry, default_operation_registry

logger = get_logger("batch.console")


class OperationsConsole:
    """DI container for the console core.

    Contract:
        - ``from_store()`` / ``from_database_url()`` / ``from_rest()``
          factories create a fully wired console.
        - ``orchestrator`` and ``tracker`` are created once and shared.
        - ``state_machine()`` returns a state machine for a workflow.

    Non-goals:
        - Does NOT own the store's lifecycle beyond ``close()`` on stores
          that expose one.
    """

    def __init__(
        self,
        store: RemoteStore,
        settings: EngineSettings | None = None,
        clock: Clock | None = None,
        registry: OperationRegistry | None = None,
    ) -> None:
        self._store = store
        self._settings = settings or EngineSettings()
        self._clock = clock or SystemClock()
        self._gateway = ActionGateway(
            store, default_timeout=self._settings.gateway_timeout_seconds,
        )
        self._tracker = OperationProgressTracker()
        self._orchestrator = BulkOperationOrchestrator(
            gateway=self._gateway,
            registry=registry if registry is not None else default_operation_registry(),
            settings=self._settings,
            clock=self._clock,
            tracker=self._tracker,
        )
        self._state_machines: dict[str, WorkflowStateMachine] = {}

    # -------------------------------------------------------------------------
    # Factories
    # -------------------------------------------------------------------------

    @classmethod
    def from_store(
        cls,
        store: RemoteStore,
        settings: EngineSettings | None = None,
        clock: Clock | None = None,
        registry: OperationRegistry | None = None,
    ) -> OperationsConsole:
        """Create a console over any RemoteStore.

        When ``settings`` is None the active settings file is loaded and
        structured logging is configured at its level.
        """
        if settings is None:
            settings = get_active_settings()
            configure_logging(level=settings.log_level.upper())
        console = cls(store, settings=settings, clock=clock, registry=registry)
        logger.info(
            "console_initialized",
            extra={
                "store": type(store).__name__,
                "concurrency": settings.concurrency,
                "gateway_timeout_ms": settings.gateway_timeout_ms,
            },
        )
        return console

    @classmethod
    def from_database_url(
        cls,
        database_url: str,
        settings: EngineSettings | None = None,
        clock: Clock | None = None,
        create_schema: bool = False,
    ) -> OperationsConsole:
        """Create a console backed by ``SqlEntityStore``."""
        from console_kernel.db.engine import (
            create_session_factory,
            create_tables,
            init_engine_from_url,
        )
        from console_kernel.services.sql_store import SqlEntityStore

        engine = init_engine_from_url(database_url)
        if create_schema:
            create_tables(engine)
        store = SqlEntityStore(create_session_factory(engine), clock=clock)
        return cls.from_store(store, settings=settings, clock=clock)

    @classmethod
    def from_rest(
        cls,
        base_url: str,
        api_key: str,
        access_token: str | None = None,
        tables: Mapping[str, str] | None = None,
        settings: EngineSettings | None = None,
        clock: Clock | None = None,
    ) -> OperationsConsole:
        """Create a console backed by ``RestEntityStore``."""
        from console_kernel.services.rest_store import RestEntityStore

        store = RestEntityStore(
            base_url, api_key, access_token=access_token, tables=tables,
        )
        return cls.from_store(store, settings=settings, clock=clock)

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------

    @property
    def settings(self) -> EngineSettings:
        return self._settings

    @property
    def gateway(self) -> ActionGateway:
        return self._gateway

    @property
    def orchestrator(self) -> BulkOperationOrchestrator:
        return self._orchestrator

    @property
    def tracker(self) -> OperationProgressTracker:
        return self._tracker

    def state_machine(
        self, workflow: WorkflowDefinition = BUDGET_WORKFLOW,
    ) -> WorkflowStateMachine:
        """The state machine for ``workflow``; one instance per workflow name."""
        machine = self._state_machines.get(workflow.name)
        if machine is None:
            machine = WorkflowStateMachine(
                self._gateway,
                workflow=workflow,
                clock=self._clock,
                call_timeout=self._settings.gateway_timeout_seconds,
            )
            self._state_machines[workflow.name] = machine
        return machine

    def close(self, timeout: float | None = None) -> None:
        """Cancel running operations, wait for in-flight units, close the store."""
        self._orchestrator.shutdown(timeout)
        close = getattr(self._store, "close", None)
        if callable(close):
            close()

    def __enter__(self) -> OperationsConsole:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()
