"""
Bulk operation handlers: license assignments (create, renew, suspend, delete).

Targets are user ids; each user holds at most one license assignment.
"""

from __future__ import annotations

import calendar
from datetime import datetime
from typing import Any, Mapping

from console_kernel.domain.gateway import GatewayAction, GatewayRequest
from console_kernel.exceptions import InvalidPayloadError

from console_batch.domain.types import OperationType

LICENSE_ENTITY = "license"
DEFAULT_DURATION_MONTHS = 12


def add_months(moment: datetime, months: int) -> datetime:
    """Same day-of-month ``months`` later, clamped to the month's last day."""
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def _positive_int(
    operation_type: str, payload: Mapping[str, Any], key: str,
) -> int:
    value = payload.get(key)
    if not isinstance(value, int) or isinstance(value, bool) or value < 1:
        raise InvalidPayloadError(
            operation_type, f"'{key}' must be a positive integer, got {value!r}"
        )
    return value


def _optional_reason(operation_type: str, payload: Mapping[str, Any]) -> None:
    reason = payload.get("reason")
    if reason is not None and not isinstance(reason, str):
        raise InvalidPayloadError(operation_type, "'reason' must be a string")


class LicenseCreateHandler:
    """Assign a new active license to each user."""

    @property
    def operation_type(self) -> str:
        return OperationType.BULK_CREATE.value

    @property
    def entity_type(self) -> str:
        return LICENSE_ENTITY

    @property
    def description(self) -> str:
        return "Create licenses for the selected users"

    def validate_payload(self, payload: Mapping[str, Any]) -> None:
        license_type = payload.get("type")
        if not isinstance(license_type, str) or not license_type.strip():
            raise InvalidPayloadError(
                self.operation_type, "'type' is required and must be a non-empty string"
            )
        if "duration_months" in payload:
            _positive_int(self.operation_type, payload, "duration_months")
        if payload.get("max_devices") is not None:
            _positive_int(self.operation_type, payload, "max_devices")

    def build_request(
        self,
        target_id: str,
        payload: Mapping[str, Any],
        as_of: datetime,
    ) -> GatewayRequest:
        months = payload.get("duration_months", DEFAULT_DURATION_MONTHS)
        patch: dict[str, Any] = {
            "license_type": payload["type"],
            "status": "active",
            "expires_at": add_months(as_of, months).isoformat(),
        }
        if payload.get("max_devices") is not None:
            patch["max_devices"] = payload["max_devices"]
        return GatewayRequest(
            entity_type=self.entity_type,
            entity_id=target_id,
            action=GatewayAction.CREATE,
            patch=patch,
        )


class LicenseRenewHandler:
    """Extend each license ``extension_months`` from now and reactivate it."""

    @property
    def operation_type(self) -> str:
        return OperationType.BULK_RENEW.value

    @property
    def entity_type(self) -> str:
        return LICENSE_ENTITY

    @property
    def description(self) -> str:
        return "Renew licenses for the selected users"

    def validate_payload(self, payload: Mapping[str, Any]) -> None:
        _positive_int(self.operation_type, payload, "extension_months")

    def build_request(
        self,
        target_id: str,
        payload: Mapping[str, Any],
        as_of: datetime,
    ) -> GatewayRequest:
        expires_at = add_months(as_of, payload["extension_months"])
        return GatewayRequest(
            entity_type=self.entity_type,
            entity_id=target_id,
            action=GatewayAction.UPDATE,
            patch={
                "status": "active",
                "expires_at": expires_at.isoformat(),
                "suspension_reason": None,
            },
        )


class LicenseSuspendHandler:
    """Suspend each license, keeping the reason on the record."""

    @property
    def operation_type(self) -> str:
        return OperationType.BULK_SUSPEND.value

    @property
    def entity_type(self) -> str:
        return LICENSE_ENTITY

    @property
    def description(self) -> str:
        return "Suspend licenses for the selected users"

    def validate_payload(self, payload: Mapping[str, Any]) -> None:
        _optional_reason(self.operation_type, payload)

    def build_request(
        self,
        target_id: str,
        payload: Mapping[str, Any],
        as_of: datetime,
    ) -> GatewayRequest:
        return GatewayRequest(
            entity_type=self.entity_type,
            entity_id=target_id,
            action=GatewayAction.UPDATE,
            patch={
                "status": "suspended",
                "suspension_reason": payload.get("reason"),
            },
        )


class LicenseDeleteHandler:
    """Remove each license assignment."""

    @property
    def operation_type(self) -> str:
        return OperationType.BULK_DELETE.value

    @property
    def entity_type(self) -> str:
        return LICENSE_ENTITY

    @property
    def description(self) -> str:
        return "Delete licenses for the selected users"

    def validate_payload(self, payload: Mapping[str, Any]) -> None:
        _optional_reason(self.operation_type, payload)

    def build_request(
        self,
        target_id: str,
        payload: Mapping[str, Any],
        as_of: datetime,
    ) -> GatewayRequest:
        return GatewayRequest(
            entity_type=self.entity_type,
            entity_id=target_id,
            action=GatewayAction.DELETE,
        )


LICENSE_HANDLERS = (
    LicenseCreateHandler(),
    LicenseRenewHandler(),
    LicenseSuspendHandler(),
    LicenseDeleteHandler(),
)
