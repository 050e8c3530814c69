"""
console_batch.domain.types -- Pure frozen dataclasses for bulk operations.

ZERO I/O.  Frozen dataclasses with enum status fields and tuples for
immutable collections.

Invariants enforced:
    - ``completed_count == success_count + error_count <= total`` on every
      OperationProgress (checked at construction).
    - Every snapshot handed to a caller is immutable.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping
from uuid import UUID


# =============================================================================
# Status enums
# =============================================================================


class OperationStatus(str, Enum):
    """Operation-level lifecycle status."""

    PENDING = "pending"  # Accepted, dispatch not started
    RUNNING = "running"  # Units being dispatched
    COMPLETED = "completed"  # All units recorded, at least one succeeded
    FAILED = "failed"  # Every unit failed, or the run was aborted
    CANCELLED = "cancelled"  # Cancel requested before all units dispatched

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATUSES


_TERMINAL_STATUSES = frozenset(
    {OperationStatus.COMPLETED, OperationStatus.FAILED, OperationStatus.CANCELLED}
)


class OperationType(str, Enum):
    """Operation types shipped with the console."""

    BULK_CREATE = "bulk_create"  # Assign licenses
    BULK_RENEW = "bulk_renew"  # Extend license expiry
    BULK_SUSPEND = "bulk_suspend"  # Suspend licenses with a reason
    BULK_DELETE = "bulk_delete"  # Remove license assignments
    BULK_ARCHIVE = "bulk_archive"  # Move budgets to the trash
    BULK_RESTORE = "bulk_restore"  # Bring budgets back from the trash


class UnitErrorReason(str, Enum):
    """Why a unit was recorded as an error."""

    TIMEOUT = "timeout"
    REJECTED = "rejected"
    NETWORK = "network"
    NOT_FOUND = "not_found"
    MISCONFIGURED = "misconfigured"
    CANCELLED = "cancelled"
    INVALID_REQUEST = "invalid_request"  # Handler could not build a request
    BATCH_TIMED_OUT = "batch_timed_out"  # Never dispatched, batch ceiling hit
    ABORTED = "aborted"  # Never dispatched, run aborted


# =============================================================================
# Unit and progress DTOs
# =============================================================================


@dataclass(frozen=True)
class OperationResult:
    """Recorded outcome of one unit (one target id)."""

    target_id: str
    success: bool
    reason: UnitErrorReason | None = None
    error_code: str | None = None
    error_message: str | None = None
    duration_ms: float = 0.0
    completed_at: datetime | None = None

    @classmethod
    def ok(
        cls,
        target_id: str,
        duration_ms: float = 0.0,
        completed_at: datetime | None = None,
    ) -> OperationResult:
        return cls(
            target_id=target_id,
            success=True,
            duration_ms=duration_ms,
            completed_at=completed_at,
        )

    @classmethod
    def error(
        cls,
        target_id: str,
        reason: UnitErrorReason,
        message: str = "",
        error_code: str | None = None,
        duration_ms: float = 0.0,
        completed_at: datetime | None = None,
    ) -> OperationResult:
        return cls(
            target_id=target_id,
            success=False,
            reason=reason,
            error_code=error_code,
            error_message=message,
            duration_ms=duration_ms,
            completed_at=completed_at,
        )


@dataclass(frozen=True)
class UnitError:
    """One entry of the operation's error list."""

    target_id: str
    reason: UnitErrorReason
    message: str = ""


@dataclass(frozen=True)
class OperationProgress:
    """Immutable progress snapshot of one operation.

    ``results`` is in completion order; the orchestrator records each
    target at most once.
    """

    operation_id: UUID
    status: OperationStatus
    total: int
    completed_count: int = 0
    success_count: int = 0
    error_count: int = 0
    results: tuple[OperationResult, ...] = ()

    def __post_init__(self) -> None:
        if self.completed_count != self.success_count + self.error_count:
            raise ValueError(
                f"completed_count {self.completed_count} != success {self.success_count} "
                f"+ error {self.error_count}"
            )
        if self.completed_count > self.total:
            raise ValueError(
                f"completed_count {self.completed_count} exceeds total {self.total}"
            )

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def remaining(self) -> int:
        return self.total - self.completed_count

    @property
    def percentage(self) -> int:
        if self.total == 0:
            return 0
        return round(self.completed_count * 100 / self.total)

    @property
    def errors(self) -> tuple[UnitError, ...]:
        return tuple(
            UnitError(r.target_id, r.reason, r.error_message or "")
            for r in self.results
            if not r.success and r.reason is not None
        )

    def failed_target_ids(self) -> tuple[str, ...]:
        """Ids a caller may resubmit as a new operation."""
        return tuple(r.target_id for r in self.results if not r.success)

    def result_for(self, target_id: str) -> OperationResult | None:
        for result in self.results:
            if result.target_id == target_id:
                return result
        return None


# =============================================================================
# Operation DTO
# =============================================================================


@dataclass(frozen=True)
class BulkOperation:
    """Immutable snapshot of a bulk operation."""

    operation_id: UUID
    operation_type: str
    target_ids: tuple[str, ...]
    status: OperationStatus
    progress: OperationProgress
    payload: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    concurrency: int = 1
    created_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    performed_by: str | None = None
    correlation_id: str | None = None
    cancel_requested: bool = False
    error_summary: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def total(self) -> int:
        return len(self.target_ids)
