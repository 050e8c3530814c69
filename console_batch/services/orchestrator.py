"""
BulkOperationOrchestrator -- fan one action out across many targets.

Contract:
    ``submit()`` validates and registers an operation, moves it to RUNNING,
    starts dispatch, and returns the RUNNING snapshot without waiting.
    ``cancel()`` stops further dispatch; ``result()``/``list_operations()``
    read snapshots; ``wait()`` blocks until terminal.

Architecture: console_batch/services.  Imports from console_batch.domain,
    console_batch.tasks, console_batch.services.progress, the kernel's
    ActionGateway, and the EngineSettings schema.

Concurrency model (per operation):
    - A dispatch cursor hands target ids out in input order.
    - ``concurrency`` worker threads each claim the next id, run one
      gateway call, and put the OperationResult on a queue.
    - One collector thread drains the queue; it alone updates counters and
      publishes progress, so snapshots are produced in a single order.
    - No lock is held across a gateway call.

Invariants enforced:
    - Each target is dispatched at most once and recorded exactly once.
    - Dispatch start order follows input order.
    - ``completed_count == success_count + error_count`` at every snapshot.
    - Cancel stops new dispatch only; in-flight units finish and are
      recorded before the operation turns CANCELLED.
    - Terminal status: CANCELLED if cancel was requested, else FAILED when
      the run aborted or no unit succeeded, else COMPLETED.
"""

from __future__ import annotations

import contextvars
import queue
import threading
import time
from dataclasses import replace
from enum import Enum
from types import MappingProxyType
from typing import Any, Iterable, Mapping
from uuid import UUID, uuid4

from console_config.schema import EngineSettings
from console_kernel.domain.clock import Clock, SystemClock
from console_kernel.domain.gateway import GatewayError, GatewayErrorKind
from console_kernel.exceptions import (
    BatchTooLargeError,
    DuplicateTargetError,
    EmptyBatchError,
    NotCancellableError,
    OperationNotFoundError,
    OperationStillRunningError,
    TooManyOperationsError,
)
from console_kernel.logging_config import LogContext, get_logger
from console_kernel.services.action_gateway import ActionGateway

from console_batch.domain.types import (
    BulkOperation,
    OperationProgress,
    OperationResult,
    OperationStatus,
    OperationType,
    UnitErrorReason,
)
from console_batch.services.progress import OperationProgressTracker
from console_batch.tasks.base import (
    OperationHandler,
    OperationRegistry,
    default_operation_registry,
)

logger = get_logger("batch.orchestrator")

_WORKER_DONE = object()

_REASON_BY_KIND = {
    GatewayErrorKind.TIMEOUT: UnitErrorReason.TIMEOUT,
    GatewayErrorKind.REJECTED: UnitErrorReason.REJECTED,
    GatewayErrorKind.NETWORK: UnitErrorReason.NETWORK,
    GatewayErrorKind.CANCELLED: UnitErrorReason.CANCELLED,
    GatewayErrorKind.MISCONFIGURED: UnitErrorReason.MISCONFIGURED,
}


class _StopReason(str, Enum):
    CANCELLED = "cancelled"
    TIMED_OUT = "timed_out"
    ABORTED = "aborted"


def _unit_reason(error: GatewayError) -> UnitErrorReason:
    if error.is_not_found:
        return UnitErrorReason.NOT_FOUND
    return _REASON_BY_KIND[error.kind]


def _duplicates(target_ids: tuple[str, ...]) -> tuple[str, ...]:
    seen: set[str] = set()
    repeated: dict[str, None] = {}
    for target_id in target_ids:
        if target_id in seen:
            repeated[target_id] = None
        seen.add(target_id)
    return tuple(repeated)


class _DispatchCursor:
    """Hands target ids to competing workers in input order."""

    def __init__(self, target_ids: tuple[str, ...], deadline: float | None):
        self._target_ids = target_ids
        self._deadline = deadline
        self._next = 0
        self._stop_reason: _StopReason | None = None
        self._lock = threading.Lock()

    def claim(self) -> str | None:
        with self._lock:
            if self._stop_reason is not None:
                return None
            if self._deadline is not None and time.monotonic() >= self._deadline:
                self._stop_reason = _StopReason.TIMED_OUT
                return None
            if self._next >= len(self._target_ids):
                return None
            target_id = self._target_ids[self._next]
            self._next += 1
            return target_id

    def stop(self, reason: _StopReason) -> None:
        """First reason wins; later stops are no-ops."""
        with self._lock:
            if self._stop_reason is None:
                self._stop_reason = reason

    @property
    def stop_reason(self) -> _StopReason | None:
        with self._lock:
            return self._stop_reason

    def undispatched(self) -> tuple[str, ...]:
        with self._lock:
            return self._target_ids[self._next:]


class _OperationRun:
    """Mutable run state of one operation; guarded by ``lock``."""

    def __init__(
        self,
        operation: BulkOperation,
        handler: OperationHandler,
        deadline: float | None,
    ):
        self.lock = threading.Lock()
        self.operation = operation
        self.handler = handler
        self.payload = operation.payload
        self.cursor = _DispatchCursor(operation.target_ids, deadline)
        self.channel: queue.Queue[Any] = queue.Queue()
        self.results: list[OperationResult] = []
        self.success_count = 0
        self.error_count = 0
        self.cancel_requested = False
        self.done = threading.Event()

    def progress(self, status: OperationStatus) -> OperationProgress:
        return OperationProgress(
            operation_id=self.operation.operation_id,
            status=status,
            total=self.operation.total,
            completed_count=len(self.results),
            success_count=self.success_count,
            error_count=self.error_count,
            results=tuple(self.results),
        )


class BulkOperationOrchestrator:
    """Runs bulk operations over a bounded worker pool per operation.

    Contract:
        - ``submit()`` returns synchronously with a RUNNING snapshot.
        - ``cancel()`` is valid while not terminal; repeated cancels of a
          running operation are no-ops.
        - Remote failures are recorded per unit; they never raise.

    Non-goals:
        - Does NOT persist operations; nothing resumes after a restart.
        - Does NOT retry units; callers resubmit ``failed_target_ids()``.
    """

    def __init__(
        self,
        gateway: ActionGateway,
        registry: OperationRegistry | None = None,
        settings: EngineSettings | None = None,
        clock: Clock | None = None,
        tracker: OperationProgressTracker | None = None,
    ):
        self._gateway = gateway
        self._registry = registry if registry is not None else default_operation_registry()
        self._settings = settings or EngineSettings()
        self._clock = clock or SystemClock()
        self._tracker = tracker or OperationProgressTracker()
        self._lock = threading.Lock()
        self._runs: dict[UUID, _OperationRun] = {}

    @property
    def tracker(self) -> OperationProgressTracker:
        return self._tracker

    @property
    def settings(self) -> EngineSettings:
        return self._settings

    # -------------------------------------------------------------------------
    # Submit
    # -------------------------------------------------------------------------

    def submit(
        self,
        operation_type: str | OperationType,
        target_ids: Iterable[str],
        payload: Mapping[str, Any] | None = None,
        *,
        concurrency: int | None = None,
        performed_by: str | None = None,
        correlation_id: str | None = None,
    ) -> BulkOperation:
        """Validate, register and start a bulk operation.

        Raises:
            UnknownOperationTypeError: No handler for ``operation_type``.
            EmptyBatchError: ``target_ids`` is empty.
            DuplicateTargetError: ``target_ids`` repeats an id.
            BatchTooLargeError: More targets than the configured limit.
            InvalidPayloadError: The handler rejected ``payload``.
            TooManyOperationsError: The running-operation limit is reached.
            ValueError: ``concurrency`` is not a positive integer.
        """
        handler = self._registry.get(operation_type)
        type_key = handler.operation_type
        targets = tuple(str(t) for t in target_ids)
        limits = self._settings.bulk_limits

        if not targets:
            raise EmptyBatchError(type_key)
        duplicates = _duplicates(targets)
        if duplicates:
            raise DuplicateTargetError(duplicates)
        if len(targets) > limits.max_targets_per_operation:
            raise BatchTooLargeError(len(targets), limits.max_targets_per_operation)

        frozen_payload = MappingProxyType(dict(payload or {}))
        handler.validate_payload(frozen_payload)

        pool_size = self._settings.concurrency if concurrency is None else concurrency
        if not isinstance(pool_size, int) or isinstance(pool_size, bool) or pool_size < 1:
            raise ValueError(f"concurrency must be a positive integer, got {pool_size!r}")

        operation_id = uuid4()
        correlation_id = (
            correlation_id
            or LogContext.get_all().get("correlation_id")
            or str(operation_id)
        )
        operation = BulkOperation(
            operation_id=operation_id,
            operation_type=type_key,
            target_ids=targets,
            status=OperationStatus.PENDING,
            progress=OperationProgress(
                operation_id=operation_id,
                status=OperationStatus.PENDING,
                total=len(targets),
            ),
            payload=frozen_payload,
            concurrency=pool_size,
            created_at=self._clock.now(),
            performed_by=performed_by,
            correlation_id=correlation_id,
        )

        batch_timeout = self._settings.batch_timeout_seconds
        deadline = time.monotonic() + batch_timeout if batch_timeout else None
        run = _OperationRun(operation, handler, deadline)

        with self._lock:
            running = sum(1 for r in self._runs.values() if not r.operation.is_terminal)
            if running >= limits.max_concurrent_operations:
                raise TooManyOperationsError(running, limits.max_concurrent_operations)
            self._runs[operation_id] = run

        self._tracker.publish(operation.progress)
        logger.info(
            "bulk_operation_submitted",
            extra={
                "operation_id": str(operation_id),
                "operation_type": type_key,
                "total_units": len(targets),
                "concurrency": pool_size,
                "performed_by": performed_by,
            },
        )

        with run.lock:
            run.operation = replace(
                run.operation,
                status=OperationStatus.RUNNING,
                started_at=self._clock.now(),
                progress=run.progress(OperationStatus.RUNNING),
            )
            started = run.operation
        self._tracker.publish(started.progress)

        with LogContext.bind(
            operation_id=str(operation_id),
            correlation_id=correlation_id,
            actor_id=performed_by,
        ):
            self._start(run)
        return started

    def _start(self, run: _OperationRun) -> None:
        operation = run.operation
        workers = min(operation.concurrency, operation.total)
        tag = str(operation.operation_id)[:8]

        collector = threading.Thread(
            target=contextvars.copy_context().run,
            args=(self._collect, run, workers),
            name=f"bulk-{tag}-collector",
            daemon=True,
        )
        collector.start()
        for index in range(workers):
            threading.Thread(
                target=contextvars.copy_context().run,
                args=(self._work, run),
                name=f"bulk-{tag}-worker-{index}",
                daemon=True,
            ).start()

        logger.info(
            "bulk_operation_started",
            extra={"workers": workers, "batch_timeout_ms": self._settings.batch_timeout_ms},
        )

    # -------------------------------------------------------------------------
    # Workers
    # -------------------------------------------------------------------------

    def _work(self, run: _OperationRun) -> None:
        try:
            while True:
                target_id = run.cursor.claim()
                if target_id is None:
                    return
                result = self._execute_unit(run, target_id)
                if result.reason == UnitErrorReason.MISCONFIGURED:
                    run.cursor.stop(_StopReason.ABORTED)
                run.channel.put(result)
        finally:
            run.channel.put(_WORKER_DONE)

    def _execute_unit(self, run: _OperationRun, target_id: str) -> OperationResult:
        started = time.monotonic()
        try:
            request = run.handler.build_request(target_id, run.payload, self._clock.now())
        except Exception as exc:
            logger.exception("unit_request_build_failed", extra={"target_id": target_id})
            return OperationResult.error(
                target_id,
                UnitErrorReason.INVALID_REQUEST,
                str(exc),
                getattr(exc, "code", None),
                completed_at=self._clock.now(),
            )

        result = self._gateway.invoke(
            request, timeout=self._settings.gateway_timeout_seconds,
        )
        duration_ms = (time.monotonic() - started) * 1000
        if result.ok:
            return OperationResult.ok(
                target_id, duration_ms=duration_ms, completed_at=self._clock.now(),
            )
        assert result.error is not None
        return OperationResult.error(
            target_id,
            _unit_reason(result.error),
            result.error.message,
            result.error.code,
            duration_ms=duration_ms,
            completed_at=self._clock.now(),
        )

    # -------------------------------------------------------------------------
    # Collector
    # -------------------------------------------------------------------------

    def _collect(self, run: _OperationRun, workers: int) -> None:
        finished = 0
        while finished < workers:
            item = run.channel.get()
            if item is _WORKER_DONE:
                finished += 1
                continue
            self._record(run, item)

        # Every worker has exited, so nothing is in flight.
        leftovers = run.cursor.undispatched()
        stop_reason = run.cursor.stop_reason
        with run.lock:
            cancelled = run.cancel_requested
        if leftovers and not cancelled and stop_reason in (
            _StopReason.TIMED_OUT,
            _StopReason.ABORTED,
        ):
            if stop_reason == _StopReason.TIMED_OUT:
                reason, message = UnitErrorReason.BATCH_TIMED_OUT, "Batch time limit reached"
            else:
                reason, message = UnitErrorReason.ABORTED, "Run aborted: store misconfigured"
            now = self._clock.now()
            for target_id in leftovers:
                self._record(
                    run, OperationResult.error(target_id, reason, message, completed_at=now),
                )

        self._finalize(run)

    def _record(self, run: _OperationRun, result: OperationResult) -> None:
        with run.lock:
            run.results.append(result)
            if result.success:
                run.success_count += 1
            else:
                run.error_count += 1
            progress = run.progress(run.operation.status)
            run.operation = replace(run.operation, progress=progress)
        self._tracker.publish(progress)

        if result.success:
            logger.debug(
                "unit_succeeded",
                extra={"target_id": result.target_id, "duration_ms": round(result.duration_ms, 2)},
            )
        else:
            logger.info(
                "unit_failed",
                extra={
                    "target_id": result.target_id,
                    "reason": result.reason.value if result.reason else None,
                    "error_code": result.error_code,
                },
            )

    def _finalize(self, run: _OperationRun) -> None:
        stop_reason = run.cursor.stop_reason
        # A cancel that lands after the last unit was dispatched stopped nothing.
        cut_short = bool(run.cursor.undispatched())
        with run.lock:
            if run.cancel_requested and cut_short:
                status = OperationStatus.CANCELLED
                summary = (
                    f"Cancelled after {len(run.results)} of {run.operation.total} units"
                )
            elif stop_reason == _StopReason.ABORTED:
                status = OperationStatus.FAILED
                summary = "Aborted: remote store is misconfigured"
            elif run.success_count == 0:
                status = OperationStatus.FAILED
                summary = f"All {run.operation.total} units failed"
            else:
                status = OperationStatus.COMPLETED
                summary = (
                    f"{run.error_count} of {run.operation.total} units failed"
                    if run.error_count
                    else None
                )
            progress = run.progress(status)
            run.operation = replace(
                run.operation,
                status=status,
                completed_at=self._clock.now(),
                progress=progress,
                cancel_requested=run.cancel_requested,
                error_summary=summary,
            )
            final = run.operation

        self._tracker.publish(progress)
        logger.info(
            "bulk_operation_completed",
            extra={
                "status": status.value,
                "total_units": final.total,
                "succeeded": progress.success_count,
                "failed": progress.error_count,
                "stop_reason": stop_reason.value if stop_reason else None,
            },
        )
        self._prune()
        run.done.set()

    # -------------------------------------------------------------------------
    # Cancel / query
    # -------------------------------------------------------------------------

    def cancel(self, operation_id: UUID) -> BulkOperation:
        """Stop dispatching new units.

        Raises:
            OperationNotFoundError: Unknown operation id.
            NotCancellableError: The operation is already terminal.
        """
        run = self._get_run(operation_id)
        with run.lock:
            if run.operation.is_terminal:
                raise NotCancellableError(str(operation_id), run.operation.status.value)
            already_requested = run.cancel_requested
            run.cancel_requested = True
            run.operation = replace(run.operation, cancel_requested=True)
            snapshot = run.operation
        run.cursor.stop(_StopReason.CANCELLED)

        if not already_requested:
            logger.info(
                "bulk_operation_cancel_requested",
                extra={
                    "operation_id": str(operation_id),
                    "completed_units": snapshot.progress.completed_count,
                    "total_units": snapshot.total,
                },
            )
        return snapshot

    def result(self, operation_id: UUID) -> BulkOperation:
        run = self._get_run(operation_id)
        with run.lock:
            return run.operation

    def wait(self, operation_id: UUID, timeout: float | None = None) -> BulkOperation:
        """Block until the operation is terminal.

        Raises:
            TimeoutError: Not terminal within ``timeout`` seconds.
        """
        run = self._get_run(operation_id)
        if not run.done.wait(timeout):
            raise TimeoutError(
                f"Bulk operation {operation_id} not finished within {timeout}s"
            )
        with run.lock:
            return run.operation

    def list_operations(self, limit: int | None = None) -> tuple[BulkOperation, ...]:
        """Known operations, newest first."""
        if limit is None:
            limit = self._settings.bulk_limits.max_retained_operations
        with self._lock:
            runs = list(self._runs.values())
        snapshots = []
        for run in reversed(runs[-limit:] if limit else []):
            with run.lock:
                snapshots.append(run.operation)
        return tuple(snapshots)

    def running_count(self) -> int:
        with self._lock:
            return sum(1 for r in self._runs.values() if not r.operation.is_terminal)

    def delete_operation(self, operation_id: UUID) -> None:
        """Forget a terminal operation.

        Raises:
            OperationNotFoundError: Unknown operation id.
            OperationStillRunningError: The operation is not terminal.
        """
        run = self._get_run(operation_id)
        with run.lock:
            if not run.operation.is_terminal:
                raise OperationStillRunningError(
                    str(operation_id), run.operation.status.value,
                )
        with self._lock:
            self._runs.pop(operation_id, None)
        self._tracker.forget(operation_id)
        logger.info("bulk_operation_deleted", extra={"operation_id": str(operation_id)})

    def shutdown(self, timeout: float | None = None) -> None:
        """Cancel every running operation and wait for in-flight units."""
        with self._lock:
            runs = list(self._runs.values())
        for run in runs:
            try:
                self.cancel(run.operation.operation_id)
            except NotCancellableError:
                continue
        deadline = time.monotonic() + timeout if timeout is not None else None
        for run in runs:
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            run.done.wait(remaining)

    def _get_run(self, operation_id: UUID) -> _OperationRun:
        with self._lock:
            run = self._runs.get(operation_id)
        if run is None:
            raise OperationNotFoundError(str(operation_id))
        return run

    def _prune(self) -> None:
        keep = self._settings.bulk_limits.max_retained_operations
        with self._lock:
            terminal = [
                operation_id
                for operation_id, run in self._runs.items()
                if run.operation.is_terminal
            ]
            expired = terminal[: max(0, len(terminal) - keep)]
            for operation_id in expired:
                del self._runs[operation_id]
        for operation_id in expired:
            self._tracker.forget(operation_id)
        if expired:
            logger.debug("bulk_operations_pruned", extra={"pruned": len(expired)})
