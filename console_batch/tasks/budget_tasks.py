"""
Bulk operation handlers: budgets (move to trash, restore from trash).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping

from console_kernel.domain.gateway import GatewayAction, GatewayRequest

from console_batch.domain.types import OperationType

BUDGET_ENTITY = "budget"


class BudgetArchiveHandler:
    """Soft-delete budgets by stamping ``deleted_at``."""

    @property
    def operation_type(self) -> str:
        return OperationType.BULK_ARCHIVE.value

    @property
    def entity_type(self) -> str:
        return BUDGET_ENTITY

    @property
    def description(self) -> str:
        return "Move the selected budgets to the trash"

    def validate_payload(self, payload: Mapping[str, Any]) -> None:
        return None

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
            patch={"deleted_at": as_of.isoformat()},
        )


class BudgetRestoreHandler:
    """Clear ``deleted_at`` on trashed budgets."""

    @property
    def operation_type(self) -> str:
        return OperationType.BULK_RESTORE.value

    @property
    def entity_type(self) -> str:
        return BUDGET_ENTITY

    @property
    def description(self) -> str:
        return "Restore the selected budgets from the trash"

    def validate_payload(self, payload: Mapping[str, Any]) -> None:
        return None

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
            patch={"deleted_at": None},
        )


BUDGET_HANDLERS = (
    BudgetArchiveHandler(),
    BudgetRestoreHandler(),
)
