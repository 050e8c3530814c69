"""
Gateway value objects -- requests, responses and typed failures.

Pure types shared by the ActionGateway, the remote stores, the state
machine and the bulk orchestrator.  A remote failure is a ``GatewayError``
value carried in a ``GatewayResult``; it is never raised past the gateway.
"""

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping
from uuid import uuid4

NOT_FOUND_CODE = "NOT_FOUND"


class GatewayAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    FETCH = "fetch"


class GatewayErrorKind(str, Enum):
    """Why a remote call did not succeed."""

    TIMEOUT = "timeout"
    REJECTED = "rejected"
    NETWORK = "network"
    CANCELLED = "cancelled"
    MISCONFIGURED = "misconfigured"


@dataclass(frozen=True)
class GatewayRequest:
    """One remote mutation or read.

    ``patch`` holds JSON-safe values.  ``idempotency_key`` identifies the
    logical attempt; stores that support it apply a key at most once.
    """

    entity_type: str
    entity_id: str
    action: GatewayAction
    patch: Mapping[str, Any] = field(default_factory=dict)
    idempotency_key: str = field(default_factory=lambda: str(uuid4()))

    def __post_init__(self) -> None:
        if not self.entity_type:
            raise ValueError("GatewayRequest.entity_type must be non-empty")
        if not self.entity_id:
            raise ValueError("GatewayRequest.entity_id must be non-empty")


@dataclass(frozen=True)
class GatewayResponse:
    """Successful store acknowledgement."""

    entity_id: str
    data: Mapping[str, Any] | None = None
    duration_ms: float = 0.0


@dataclass(frozen=True)
class GatewayError:
    kind: GatewayErrorKind
    message: str
    code: str | None = None

    @property
    def is_not_found(self) -> bool:
        return self.kind == GatewayErrorKind.REJECTED and self.code == NOT_FOUND_CODE


@dataclass(frozen=True)
class GatewayResult:
    """Outcome of ``ActionGateway.invoke``: exactly one of response/error is set."""

    request: GatewayRequest
    response: GatewayResponse | None = None
    error: GatewayError | None = None
    duration_ms: float = 0.0

    def __post_init__(self) -> None:
        if (self.response is None) == (self.error is None):
            raise ValueError("GatewayResult needs exactly one of response or error")

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(
        cls,
        request: GatewayRequest,
        data: Mapping[str, Any] | None,
        duration_ms: float,
    ) -> "GatewayResult":
        return cls(
            request=request,
            response=GatewayResponse(
                entity_id=request.entity_id, data=data, duration_ms=duration_ms
            ),
            duration_ms=duration_ms,
        )

    @classmethod
    def failure(
        cls,
        request: GatewayRequest,
        kind: GatewayErrorKind,
        message: str,
        code: str | None = None,
        duration_ms: float = 0.0,
    ) -> "GatewayResult":
        return cls(
            request=request,
            error=GatewayError(kind=kind, message=message, code=code),
            duration_ms=duration_ms,
        )


class CancellationToken:
    """Cooperative cancellation signal shared between a caller and a call."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        return self._event.wait(timeout)
