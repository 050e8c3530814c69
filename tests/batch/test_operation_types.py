"""
Unit tests for console_batch.domain.types -- frozen DTOs and enums.
"""

from dataclasses import FrozenInstanceError
from uuid import uuid4

import pytest

from console_batch.domain.types import (
    BulkOperation,
    OperationProgress,
    OperationResult,
    OperationStatus,
    OperationType,
    UnitError,
    UnitErrorReason,
)


def _progress(**overrides) -> OperationProgress:
    values = {
        "operation_id": uuid4(),
        "status": OperationStatus.RUNNING,
        "total": 5,
        "completed_count": 2,
        "success_count": 1,
        "error_count": 1,
        "results": (
            OperationResult.ok("u-1"),
            OperationResult.error("u-2", UnitErrorReason.REJECTED, "stale row"),
        ),
    }
    values.update(overrides)
    return OperationProgress(**values)


# =============================================================================
# Enums
# =============================================================================


class TestOperationStatus:
    @pytest.mark.parametrize(
        "status, terminal",
        [
            (OperationStatus.PENDING, False),
            (OperationStatus.RUNNING, False),
            (OperationStatus.COMPLETED, True),
            (OperationStatus.FAILED, True),
            (OperationStatus.CANCELLED, True),
        ],
    )
    def test_terminal(self, status, terminal):
        assert status.is_terminal is terminal

    def test_values_are_strings(self):
        assert OperationStatus("running") is OperationStatus.RUNNING
        assert OperationType("bulk_renew") is OperationType.BULK_RENEW


# =============================================================================
# OperationProgress
# =============================================================================


class TestOperationProgress:
    def test_derived_values(self):
        progress = _progress()
        assert progress.remaining == 3
        assert progress.percentage == 40
        assert not progress.is_terminal

    def test_errors_list(self):
        assert _progress().errors == (
            UnitError("u-2", UnitErrorReason.REJECTED, "stale row"),
        )

    def test_failed_target_ids(self):
        assert _progress().failed_target_ids() == ("u-2",)

    def test_result_for(self):
        progress = _progress()
        assert progress.result_for("u-1").success
        assert progress.result_for("u-9") is None

    def test_counts_must_add_up(self):
        with pytest.raises(ValueError):
            _progress(completed_count=3)

    def test_completed_cannot_exceed_total(self):
        with pytest.raises(ValueError):
            _progress(total=1)

    def test_empty_total_percentage(self):
        progress = OperationProgress(uuid4(), OperationStatus.PENDING, total=0)
        assert progress.percentage == 0

    def test_frozen(self):
        with pytest.raises(FrozenInstanceError):
            _progress().completed_count = 4


class TestOperationResult:
    def test_ok(self):
        result = OperationResult.ok("u-1", duration_ms=12.5)
        assert result.success
        assert result.reason is None

    def test_error(self):
        result = OperationResult.error(
            "u-1", UnitErrorReason.NOT_FOUND, "gone", error_code="NOT_FOUND",
        )
        assert not result.success
        assert result.error_code == "NOT_FOUND"
        assert result.error_message == "gone"


class TestBulkOperation:
    def test_total_and_terminal(self):
        progress = _progress(status=OperationStatus.COMPLETED)
        operation = BulkOperation(
            operation_id=progress.operation_id,
            operation_type="bulk_renew",
            target_ids=("u-1", "u-2", "u-3", "u-4", "u-5"),
            status=OperationStatus.COMPLETED,
            progress=progress,
        )
        assert operation.total == 5
        assert operation.is_terminal
        assert dict(operation.payload) == {}
