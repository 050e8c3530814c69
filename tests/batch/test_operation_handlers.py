"""
Tests for the operation registry and the shipped license/budget handlers.
"""

from datetime import datetime, timezone

import pytest

from console_kernel.domain.gateway import GatewayAction
from console_kernel.exceptions import InvalidPayloadError, UnknownOperationTypeError
from console_batch.domain.types import OperationType
from console_batch.tasks import (
    BudgetArchiveHandler,
    BudgetRestoreHandler,
    LicenseCreateHandler,
    LicenseDeleteHandler,
    LicenseRenewHandler,
    LicenseSuspendHandler,
    OperationHandler,
    OperationRegistry,
    add_months,
    default_operation_registry,
)

from tests.fakes import TouchHandler

AS_OF = datetime(2024, 1, 31, 8, 0, tzinfo=timezone.utc)


# =============================================================================
# Registry
# =============================================================================


class TestOperationRegistry:
    def test_default_registry_has_every_type(self):
        registry = default_operation_registry()
        assert registry.list_types() == tuple(sorted(t.value for t in OperationType))
        assert len(registry) == len(OperationType)

    def test_lookup_by_enum_or_string(self):
        registry = default_operation_registry()
        assert registry.get(OperationType.BULK_RENEW) is registry.get("bulk_renew")
        assert OperationType.BULK_DELETE in registry
        assert "bulk_nope" not in registry
        assert 42 not in registry

    def test_unknown_type(self):
        with pytest.raises(UnknownOperationTypeError) as exc_info:
            OperationRegistry().get("bulk_nope")
        assert exc_info.value.available == ()

    def test_duplicate_registration(self):
        registry = OperationRegistry()
        registry.register(TouchHandler())
        with pytest.raises(ValueError):
            registry.register(TouchHandler())

    def test_handlers_satisfy_protocol(self):
        for handler in (LicenseCreateHandler(), BudgetArchiveHandler(), TouchHandler()):
            assert isinstance(handler, OperationHandler)


# =============================================================================
# License handlers
# =============================================================================


class TestLicenseCreate:
    handler = LicenseCreateHandler()

    def test_request(self):
        request = self.handler.build_request("u-1", {"type": "premium", "max_devices": 3}, AS_OF)
        assert request.entity_type == "license"
        assert request.action == GatewayAction.CREATE
        assert request.patch == {
            "license_type": "premium",
            "status": "active",
            "expires_at": "2025-01-31T08:00:00+00:00",
            "max_devices": 3,
        }

    def test_custom_duration(self):
        request = self.handler.build_request("u-1", {"type": "basic", "duration_months": 1}, AS_OF)
        assert request.patch["expires_at"] == "2024-02-29T08:00:00+00:00"

    @pytest.mark.parametrize(
        "payload",
        [
            {},
            {"type": ""},
            {"type": "basic", "duration_months": 0},
            {"type": "basic", "duration_months": True},
            {"type": "basic", "max_devices": "many"},
        ],
    )
    def test_invalid_payloads(self, payload):
        with pytest.raises(InvalidPayloadError):
            self.handler.validate_payload(payload)


class TestLicenseRenew:
    handler = LicenseRenewHandler()

    def test_request(self):
        request = self.handler.build_request("u-1", {"extension_months": 6}, AS_OF)
        assert request.action == GatewayAction.UPDATE
        assert request.patch == {
            "status": "active",
            "expires_at": "2024-07-31T08:00:00+00:00",
            "suspension_reason": None,
        }

    def test_extension_required(self):
        with pytest.raises(InvalidPayloadError, match="extension_months"):
            self.handler.validate_payload({})


class TestLicenseSuspendAndDelete:
    def test_suspend_keeps_reason(self):
        request = LicenseSuspendHandler().build_request("u-1", {"reason": "unpaid"}, AS_OF)
        assert request.patch == {"status": "suspended", "suspension_reason": "unpaid"}

    def test_suspend_reason_must_be_text(self):
        with pytest.raises(InvalidPayloadError):
            LicenseSuspendHandler().validate_payload({"reason": 5})

    def test_delete(self):
        request = LicenseDeleteHandler().build_request("u-1", {}, AS_OF)
        assert request.action == GatewayAction.DELETE
        assert request.patch == {}

    def test_each_request_has_its_own_key(self):
        handler = LicenseDeleteHandler()
        first = handler.build_request("u-1", {}, AS_OF)
        second = handler.build_request("u-1", {}, AS_OF)
        assert first.idempotency_key != second.idempotency_key


# =============================================================================
# Budget handlers
# =============================================================================


class TestBudgetHandlers:
    def test_archive_stamps_deleted_at(self):
        request = BudgetArchiveHandler().build_request("b-1", {}, AS_OF)
        assert request.entity_type == "budget"
        assert request.patch == {"deleted_at": AS_OF.isoformat()}

    def test_restore_clears_deleted_at(self):
        request = BudgetRestoreHandler().build_request("b-1", {}, AS_OF)
        assert request.patch == {"deleted_at": None}


class TestAddMonths:
    @pytest.mark.parametrize(
        "start, months, expected",
        [
            (datetime(2024, 1, 31), 1, datetime(2024, 2, 29)),
            (datetime(2023, 1, 31), 1, datetime(2023, 2, 28)),
            (datetime(2024, 11, 15), 3, datetime(2025, 2, 15)),
            (datetime(2024, 5, 31), 12, datetime(2025, 5, 31)),
        ],
    )
    def test_add_months(self, start, months, expected):
        assert add_months(start, months) == expected
