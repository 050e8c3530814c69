"""
Configuration schema (``console_config.schema``).

Responsibility
--------------
Frozen dataclasses describing the engine settings: the per-operation
worker pool size, the gateway call timeout, the optional whole-batch soft
timeout, and the bulk operation limits.

Architecture position
---------------------
**Config layer** -- pure data, no I/O.  Consumed by ``console_batch``;
the kernel never imports it and receives plain numbers instead.

Invariants enforced
-------------------
* Every count and duration is positive (``__post_init__``).
* Defaults reproduce the console's historical behaviour: 4 workers,
  8 s per call, no batch ceiling.
"""

from __future__ import annotations

from dataclasses import dataclass, field

DEFAULT_CONCURRENCY = 4
DEFAULT_GATEWAY_TIMEOUT_MS = 8000


@dataclass(frozen=True)
class BulkLimits:
    """Submit-time limits for bulk operations."""

    max_targets_per_operation: int = 500
    max_concurrent_operations: int = 5
    max_retained_operations: int = 50

    def __post_init__(self) -> None:
        for name in (
            "max_targets_per_operation",
            "max_concurrent_operations",
            "max_retained_operations",
        ):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or value < 1:
                raise ValueError(f"bulk_limits.{name} must be a positive integer, got {value!r}")


@dataclass(frozen=True)
class EngineSettings:
    """Tunables for the workflow engine and the bulk orchestrator."""

    concurrency: int = DEFAULT_CONCURRENCY
    gateway_timeout_ms: int = DEFAULT_GATEWAY_TIMEOUT_MS
    batch_timeout_ms: int | None = None
    bulk_limits: BulkLimits = field(default_factory=BulkLimits)
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        for name in ("concurrency", "gateway_timeout_ms"):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or value < 1:
                raise ValueError(f"{name} must be a positive integer, got {value!r}")
        if self.batch_timeout_ms is not None and (
            not isinstance(self.batch_timeout_ms, int)
            or isinstance(self.batch_timeout_ms, bool)
            or self.batch_timeout_ms < 1
        ):
            raise ValueError(
                f"batch_timeout_ms must be a positive integer or null, "
                f"got {self.batch_timeout_ms!r}"
            )
        if not isinstance(self.log_level, str) or self.log_level.upper() not in (
            "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL",
        ):
            raise ValueError(f"Unknown log_level: {self.log_level!r}")

    @property
    def gateway_timeout_seconds(self) -> float:
        return self.gateway_timeout_ms / 1000

    @property
    def batch_timeout_seconds(self) -> float | None:
        if self.batch_timeout_ms is None:
            return None
        return self.batch_timeout_ms / 1000
