"""
console_batch.tasks -- Operation handler protocol, registry, and the
license and budget handlers shipped with the console.
"""

from console_batch.tasks.base import (
    OperationHandler,
    OperationRegistry,
    default_operation_registry,
    operation_key,
)
from console_batch.tasks.budget_tasks import (
    BUDGET_HANDLERS,
    BudgetArchiveHandler,
    BudgetRestoreHandler,
)
from console_batch.tasks.license_tasks import (
    LICENSE_HANDLERS,
    LicenseCreateHandler,
    LicenseDeleteHandler,
    LicenseRenewHandler,
    LicenseSuspendHandler,
    add_months,
)

__all__ = [
    "BUDGET_HANDLERS",
    "BudgetArchiveHandler",
    "BudgetRestoreHandler",
    "LICENSE_HANDLERS",
    "LicenseCreateHandler",
    "LicenseDeleteHandler",
    "LicenseRenewHandler",
    "LicenseSuspendHandler",
    "OperationHandler",
    "OperationRegistry",
    "add_months",
    "default_operation_registry",
    "operation_key",
]
