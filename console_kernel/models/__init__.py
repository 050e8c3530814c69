"""ORM records persisted by the SQL-backed remote store."""

from console_kernel.models.records import (
    BudgetRecord,
    LicenseRecord,
    MutationLogRecord,
    record_to_dict,
)

__all__ = [
    "BudgetRecord",
    "LicenseRecord",
    "MutationLogRecord",
    "record_to_dict",
]
