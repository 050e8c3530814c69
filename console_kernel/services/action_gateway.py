"""
ActionGateway -- the single path from the console core to the remote store.

Responsibility:
    Issues exactly one ``RemoteStore.apply`` call per ``invoke`` and turns
    whatever happens into a ``GatewayResult``: a response, or a typed
    ``GatewayError`` (timeout, rejected(code), network, cancelled,
    misconfigured).

Architecture position:
    Kernel > Services -- the only component that performs remote I/O on
    behalf of the WorkflowStateMachine and the BulkOperationOrchestrator.

Invariants enforced:
    - Stateless: nothing about an entity survives a call.
    - No retries: a failed call is reported once.
    - A timed-out call is abandoned, not undone; its store thread keeps
      running to completion in the background.

Failure modes:
    - ValueError for a non-positive timeout (programming error).
    - Every store/transport failure is returned, never raised.
"""

from __future__ import annotations

import contextvars
import threading
import time
from typing import Any, Mapping, Protocol, runtime_checkable

from console_kernel.domain.gateway import (
    NOT_FOUND_CODE,
    CancellationToken,
    GatewayErrorKind,
    GatewayRequest,
    GatewayResult,
)
from console_kernel.exceptions import (
    EntityNotFoundError,
    StoreConfigurationError,
    StoreRejectedError,
    StoreUnavailableError,
)
from console_kernel.logging_config import get_logger

logger = get_logger("services.action_gateway")

DEFAULT_TIMEOUT_SECONDS = 8.0

# How often a waiting caller re-checks its cancellation token.
_CANCEL_POLL_SECONDS = 0.05


@runtime_checkable
class RemoteStore(Protocol):
    """Source of truth for entities.

    ``apply`` performs one request and returns the store's representation
    of the affected record (or None).  Failures are raised as
    ``StoreError`` subclasses; anything else is treated as unexpected.
    """

    def apply(self, request: GatewayRequest) -> Mapping[str, Any] | None:
        ...


class _StoreCall:
    """One store call running on its own daemon thread."""

    def __init__(self, store: RemoteStore, request: GatewayRequest):
        self._store = store
        self._request = request
        self.done = threading.Event()
        self.data: Mapping[str, Any] | None = None
        self.error: BaseException | None = None

    def start(self) -> None:
        ctx = contextvars.copy_context()
        thread = threading.Thread(
            target=ctx.run,
            args=(self._run,),
            name=f"gateway-{self._request.entity_type}-{self._request.entity_id}",
            daemon=True,
        )
        thread.start()

    def _run(self) -> None:
        try:
            self.data = self._store.apply(self._request)
        except Exception as exc:
            self.error = exc
        finally:
            self.done.set()


class ActionGateway:
    """Executes remote requests with a timeout and typed failures."""

    def __init__(
        self,
        store: RemoteStore,
        default_timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        if default_timeout <= 0:
            raise ValueError("default_timeout must be positive")
        self._store = store
        self._default_timeout = default_timeout

    @property
    def default_timeout(self) -> float:
        return self._default_timeout

    def invoke(
        self,
        request: GatewayRequest,
        timeout: float | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> GatewayResult:
        """Run one request against the store.

        Args:
            request: The mutation or read to perform.
            timeout: Seconds to wait; defaults to the gateway default (8 s).
            cancel_token: Optional token; once cancelled the caller stops
                waiting and gets a ``cancelled`` result.

        Returns:
            GatewayResult with either a response or a GatewayError.
        """
        effective_timeout = self._default_timeout if timeout is None else timeout
        if effective_timeout <= 0:
            raise ValueError("timeout must be positive")

        if cancel_token is not None and cancel_token.cancelled:
            return GatewayResult.failure(
                request,
                GatewayErrorKind.CANCELLED,
                "Cancelled before dispatch",
            )

        started = time.monotonic()
        deadline = started + effective_timeout
        call = _StoreCall(self._store, request)
        call.start()

        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                elapsed_ms = (time.monotonic() - started) * 1000
                logger.warning(
                    "gateway_timeout",
                    extra={
                        "entity_type": request.entity_type,
                        "entity_id": request.entity_id,
                        "action": request.action.value,
                        "timeout_seconds": effective_timeout,
                    },
                )
                return GatewayResult.failure(
                    request,
                    GatewayErrorKind.TIMEOUT,
                    f"No response within {effective_timeout:g}s",
                    duration_ms=elapsed_ms,
                )
            wait_for = (
                remaining
                if cancel_token is None
                else min(remaining, _CANCEL_POLL_SECONDS)
            )
            if call.done.wait(wait_for):
                break
            if cancel_token is not None and cancel_token.cancelled:
                logger.info(
                    "gateway_call_cancelled",
                    extra={
                        "entity_type": request.entity_type,
                        "entity_id": request.entity_id,
                    },
                )
                return GatewayResult.failure(
                    request,
                    GatewayErrorKind.CANCELLED,
                    "Cancelled while waiting for the store",
                    duration_ms=(time.monotonic() - started) * 1000,
                )

        duration_ms = (time.monotonic() - started) * 1000
        if call.error is not None:
            return self._failure_from(request, call.error, duration_ms)

        logger.debug(
            "gateway_call_succeeded",
            extra={
                "entity_type": request.entity_type,
                "entity_id": request.entity_id,
                "action": request.action.value,
                "duration_ms": round(duration_ms, 2),
            },
        )
        return GatewayResult.success(request, call.data, duration_ms)

    def _failure_from(
        self,
        request: GatewayRequest,
        exc: BaseException,
        duration_ms: float,
    ) -> GatewayResult:
        if isinstance(exc, EntityNotFoundError):
            kind, code = GatewayErrorKind.REJECTED, NOT_FOUND_CODE
        elif isinstance(exc, StoreRejectedError):
            kind, code = GatewayErrorKind.REJECTED, exc.reject_code
        elif isinstance(exc, StoreConfigurationError):
            kind, code = GatewayErrorKind.MISCONFIGURED, exc.code
        elif isinstance(exc, (StoreUnavailableError, ConnectionError, TimeoutError)):
            kind, code = GatewayErrorKind.NETWORK, getattr(exc, "code", None)
        else:
            logger.error(
                "gateway_store_unexpected_error",
                exc_info=(type(exc), exc, exc.__traceback__),
                extra={
                    "entity_type": request.entity_type,
                    "entity_id": request.entity_id,
                },
            )
            kind, code = GatewayErrorKind.REJECTED, "UNHANDLED_EXCEPTION"

        logger.info(
            "gateway_call_failed",
            extra={
                "entity_type": request.entity_type,
                "entity_id": request.entity_id,
                "action": request.action.value,
                "error_kind": kind.value,
                "error_code": code,
                "duration_ms": round(duration_ms, 2),
            },
        )
        return GatewayResult.failure(
            request, kind, str(exc) or type(exc).__name__, code, duration_ms
        )
