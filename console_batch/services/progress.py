"""
OperationProgressTracker -- latest progress per operation, plus observers.

Contract:
    The orchestrator publishes a fresh ``OperationProgress`` after every
    unit completion and once more on the terminal transition.  Readers
    call ``snapshot()`` or ``subscribe()``.

Architecture: console_batch/services.  In-memory only; progress is not
persisted and does not survive a restart.

Invariants enforced:
    - ``completed_count`` never decreases for an operation
      (ProgressRegressionError).
    - Nothing is accepted after a terminal snapshot, so observers never
      see a non-terminal status after a terminal one.
    - Each publication reaches each subscriber at most once, in publish
      order (publications for one operation come from one thread).
    - Subscriber exceptions are logged and never reach the publisher.
"""

from __future__ import annotations

import itertools
import threading
from typing import Callable
from uuid import UUID

from console_kernel.exceptions import OperationNotFoundError, ProgressRegressionError
from console_kernel.logging_config import get_logger

from console_batch.domain.types import OperationProgress

logger = get_logger("batch.progress")

ProgressCallback = Callable[[OperationProgress], None]


class Subscription:
    """Handle returned by ``subscribe``; ``unsubscribe()`` is idempotent."""

    def __init__(self, tracker: OperationProgressTracker, operation_id: UUID, token: int):
        self._tracker = tracker
        self.operation_id = operation_id
        self._token = token

    @property
    def active(self) -> bool:
        return self._tracker._is_subscribed(self.operation_id, self._token)

    def unsubscribe(self) -> None:
        self._tracker._unsubscribe(self.operation_id, self._token)

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *exc: object) -> None:
        self.unsubscribe()


class OperationProgressTracker:
    """Holds the latest progress snapshot of every known operation."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._latest: dict[UUID, OperationProgress] = {}
        self._subscribers: dict[UUID, dict[int, ProgressCallback]] = {}
        self._tokens = itertools.count(1)

    def publish(self, progress: OperationProgress) -> bool:
        """Record a snapshot and notify subscribers.

        Returns:
            False when the operation is already terminal and the snapshot
            was dropped, True otherwise.

        Raises:
            ProgressRegressionError: If ``completed_count`` would decrease.
        """
        operation_id = progress.operation_id
        with self._lock:
            previous = self._latest.get(operation_id)
            if previous is not None:
                if previous.is_terminal:
                    logger.warning(
                        "progress_after_terminal_dropped",
                        extra={
                            "operation_id": str(operation_id),
                            "terminal_status": previous.status.value,
                            "attempted_status": progress.status.value,
                        },
                    )
                    return False
                if progress.completed_count < previous.completed_count:
                    raise ProgressRegressionError(
                        str(operation_id),
                        previous.completed_count,
                        progress.completed_count,
                    )
            self._latest[operation_id] = progress
            callbacks = list(self._subscribers.get(operation_id, {}).values())
            if progress.is_terminal:
                self._subscribers.pop(operation_id, None)

        for callback in callbacks:
            self._deliver(callback, progress)
        return True

    def snapshot(self, operation_id: UUID) -> OperationProgress:
        with self._lock:
            try:
                return self._latest[operation_id]
            except KeyError:
                raise OperationNotFoundError(str(operation_id)) from None

    def subscribe(
        self,
        operation_id: UUID,
        on_change: ProgressCallback,
    ) -> Subscription:
        """Observe an operation.

        ``on_change`` fires on each later publication.  If the operation is
        already terminal it fires once, immediately, with the terminal
        snapshot, and the returned subscription is inactive.
        """
        token = next(self._tokens)
        with self._lock:
            latest = self._latest.get(operation_id)
            if latest is None:
                raise OperationNotFoundError(str(operation_id))
            if not latest.is_terminal:
                self._subscribers.setdefault(operation_id, {})[token] = on_change

        if latest.is_terminal:
            self._deliver(on_change, latest)
        return Subscription(self, operation_id, token)

    def forget(self, operation_id: UUID) -> None:
        with self._lock:
            self._latest.pop(operation_id, None)
            self._subscribers.pop(operation_id, None)

    def known_operations(self) -> tuple[UUID, ...]:
        with self._lock:
            return tuple(self._latest)

    def _unsubscribe(self, operation_id: UUID, token: int) -> None:
        with self._lock:
            subscribers = self._subscribers.get(operation_id)
            if subscribers is not None:
                subscribers.pop(token, None)
                if not subscribers:
                    del self._subscribers[operation_id]

    def _is_subscribed(self, operation_id: UUID, token: int) -> bool:
        with self._lock:
            return token in self._subscribers.get(operation_id, {})

    @staticmethod
    def _deliver(callback: ProgressCallback, progress: OperationProgress) -> None:
        try:
            callback(progress)
        except Exception:
            logger.exception(
                "progress_subscriber_failed",
                extra={"operation_id": str(progress.operation_id)},
            )
