"""console_batch.services -- bulk orchestrator and progress tracker."""

from console_batch.services.orchestrator import BulkOperationOrchestrator
from console_batch.services.progress import OperationProgressTracker, Subscription

__all__ = [
    "BulkOperationOrchestrator",
    "OperationProgressTracker",
    "Subscription",
]
