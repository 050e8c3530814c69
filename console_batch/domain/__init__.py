"""
console_batch.domain -- Pure types and value objects for bulk operations.

ZERO I/O.  All types are frozen dataclasses.
"""

from console_batch.domain.types import (
    BulkOperation,
    OperationProgress,
    OperationResult,
    OperationStatus,
    OperationType,
    UnitError,
    UnitErrorReason,
)

__all__ = [
    "BulkOperation",
    "OperationProgress",
    "OperationResult",
    "OperationStatus",
    "OperationType",
    "UnitError",
    "UnitErrorReason",
]
