"""
Typed Exception Hierarchy for the Console Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

An operations console surfaces failures to staff who need to act on them:
retry a failed unit, pick another transition, fix a credential.  Callers
must be able to tell these apart without parsing message strings:
  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Remote failures are NOT raised to callers of the gateway, the state
machine, or the orchestrator.  They come back as values (GatewayResult,
TransitionOutcome, OperationResult).  The Store* exceptions below are
raised by RemoteStore implementations and translated by the ActionGateway.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ConsoleKernelError (base)
    |
    +-- WorkflowError
    |   +-- InvalidTransitionError
    |   +-- TransitionInProgressError
    |   +-- WorkflowDefinitionError
    |
    +-- BatchError
    |   +-- BatchValidationError
    |   |   +-- EmptyBatchError
    |   |   +-- DuplicateTargetError
    |   |   +-- BatchTooLargeError
    |   |   +-- InvalidPayloadError
    |   +-- UnknownOperationTypeError
    |   +-- TooManyOperationsError
    |   +-- OperationNotFoundError
    |   +-- NotCancellableError
    |   +-- OperationStillRunningError
    |   +-- ProgressRegressionError
    |
    +-- StoreError
        +-- StoreRejectedError
        |   +-- EntityNotFoundError
        +-- StoreUnavailableError
        +-- StoreConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Workflow        | INVALID_TRANSITION          | Transition not available from status/flags
                | TRANSITION_IN_PROGRESS      | Entity already has an unconfirmed transition
                | INVALID_WORKFLOW_DEFINITION | Workflow references undeclared statuses
----------------|-----------------------------|-----------------------------------------
Batch           | EMPTY_BATCH                 | Submit with no target ids
                | DUPLICATE_TARGET            | Same target id listed twice
                | BATCH_TOO_LARGE             | More targets than the configured limit
                | INVALID_PAYLOAD             | Handler rejected the operation payload
                | UNKNOWN_OPERATION_TYPE      | No handler registered for the type
                | TOO_MANY_OPERATIONS         | Running-operation limit reached
                | OPERATION_NOT_FOUND         | Unknown (or pruned) operation id
                | NOT_CANCELLABLE             | Cancel requested on a terminal operation
                | OPERATION_STILL_RUNNING     | Delete requested on a running operation
                | PROGRESS_REGRESSION         | Progress counter would move backwards
----------------|-----------------------------|-----------------------------------------
Store           | STORE_REJECTED              | Store refused the change (reject_code set)
                | NOT_FOUND                   | Target entity does not exist
                | STORE_UNAVAILABLE           | Transport/connectivity failure
                | STORE_MISCONFIGURED         | Credentials or collection mapping broken

===============================================================================
HANDLING PATTERNS
===============================================================================

1. VALIDATION ERRORS ARE SYNCHRONOUS:

    try:
        operation = orchestrator.submit("bulk_suspend", user_ids, payload)
    except BatchValidationError as e:
        show_form_error(e.code, str(e))

2. NOT-FOUND IS A REJECTION WITH A WELL-KNOWN CODE:

    except EntityNotFoundError as e:
        assert e.reject_code == "NOT_FOUND"

===============================================================================
"""


class ConsoleKernelError(Exception):
    """
    Base exception for all console kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "CONSOLE_KERNEL_ERROR"


# Workflow exceptions


class WorkflowError(ConsoleKernelError):
    """Base exception for workflow state errors."""

    code: str = "WORKFLOW_ERROR"


class InvalidTransitionError(WorkflowError):
    """Transition is not available from the entity's current status/flags."""

    code: str = "INVALID_TRANSITION"

    def __init__(
        self,
        entity_id: str,
        current_status: str,
        transition_name: str,
        available: tuple[str, ...] = (),
    ):
        self.entity_id = entity_id
        self.current_status = current_status
        self.transition_name = transition_name
        self.available = available
        super().__init__(
            f"Transition '{transition_name}' is not available for entity "
            f"{entity_id} in status '{current_status}' "
            f"(available: {', '.join(available) or 'none'})"
        )


class TransitionInProgressError(WorkflowError):
    """Entity already has a transition awaiting confirmation."""

    code: str = "TRANSITION_IN_PROGRESS"

    def __init__(self, entity_id: str, transition_name: str):
        self.entity_id = entity_id
        self.transition_name = transition_name
        super().__init__(
            f"Entity {entity_id} has an unconfirmed '{transition_name}' "
            f"transition in flight"
        )


class WorkflowDefinitionError(WorkflowError):
    """A workflow definition is structurally invalid."""

    code: str = "INVALID_WORKFLOW_DEFINITION"

    def __init__(self, workflow_name: str, reason: str):
        self.workflow_name = workflow_name
        self.reason = reason
        super().__init__(f"Workflow '{workflow_name}' is invalid: {reason}")


# Bulk operation exceptions


class BatchError(ConsoleKernelError):
    """Base exception for bulk operation errors."""

    code: str = "BATCH_ERROR"


class BatchValidationError(BatchError):
    """Base exception for submit-time validation failures."""

    code: str = "BATCH_VALIDATION_ERROR"


class EmptyBatchError(BatchValidationError):
    """Submit called with no target ids."""

    code: str = "EMPTY_BATCH"

    def __init__(self, operation_type: str):
        self.operation_type = operation_type
        super().__init__(
            f"Bulk operation '{operation_type}' requires at least one target"
        )


class DuplicateTargetError(BatchValidationError):
    """Target ids contain duplicates."""

    code: str = "DUPLICATE_TARGET"

    def __init__(self, duplicates: tuple[str, ...]):
        self.duplicates = duplicates
        super().__init__(
            f"Duplicate target ids in bulk operation: {', '.join(duplicates)}"
        )


class BatchTooLargeError(BatchValidationError):
    """More targets than the configured per-operation limit."""

    code: str = "BATCH_TOO_LARGE"

    def __init__(self, size: int, limit: int):
        self.size = size
        self.limit = limit
        super().__init__(
            f"Bulk operation has {size} targets, limit is {limit}"
        )


class InvalidPayloadError(BatchValidationError):
    """The operation handler rejected the payload."""

    code: str = "INVALID_PAYLOAD"

    def __init__(self, operation_type: str, reason: str):
        self.operation_type = operation_type
        self.reason = reason
        super().__init__(
            f"Invalid payload for '{operation_type}': {reason}"
        )


class UnknownOperationTypeError(BatchError):
    """No handler is registered for the operation type."""

    code: str = "UNKNOWN_OPERATION_TYPE"

    def __init__(self, operation_type: str, available: tuple[str, ...] = ()):
        self.operation_type = operation_type
        self.available = available
        super().__init__(
            f"No handler registered for operation type '{operation_type}' "
            f"(available: {', '.join(available) or 'none'})"
        )


class TooManyOperationsError(BatchError):
    """The running-operation limit has been reached."""

    code: str = "TOO_MANY_OPERATIONS"

    def __init__(self, running: int, limit: int):
        self.running = running
        self.limit = limit
        super().__init__(
            f"{running} bulk operations already running, limit is {limit}"
        )


class OperationNotFoundError(BatchError):
    """Operation id is unknown to the orchestrator or tracker."""

    code: str = "OPERATION_NOT_FOUND"

    def __init__(self, operation_id: str):
        self.operation_id = operation_id
        super().__init__(f"Bulk operation not found: {operation_id}")


class NotCancellableError(BatchError):
    """Cancel requested on an operation that already reached a terminal status."""

    code: str = "NOT_CANCELLABLE"

    def __init__(self, operation_id: str, status: str):
        self.operation_id = operation_id
        self.status = status
        super().__init__(
            f"Bulk operation {operation_id} is {status} and cannot be cancelled"
        )


class OperationStillRunningError(BatchError):
    """Operation must be terminal for the requested action."""

    code: str = "OPERATION_STILL_RUNNING"

    def __init__(self, operation_id: str, status: str):
        self.operation_id = operation_id
        self.status = status
        super().__init__(
            f"Bulk operation {operation_id} is still {status}"
        )


class ProgressRegressionError(BatchError):
    """A progress publication would move a counter backwards."""

    code: str = "PROGRESS_REGRESSION"

    def __init__(self, operation_id: str, previous: int, attempted: int):
        self.operation_id = operation_id
        self.previous = previous
        self.attempted = attempted
        super().__init__(
            f"Progress for {operation_id} would regress from "
            f"{previous} to {attempted} completed units"
        )


# Remote store exceptions


class StoreError(ConsoleKernelError):
    """Base exception raised by RemoteStore implementations."""

    code: str = "STORE_ERROR"


class StoreRejectedError(StoreError):
    """The store refused the requested change."""

    code: str = "STORE_REJECTED"

    def __init__(self, reject_code: str, message: str):
        self.reject_code = reject_code
        super().__init__(message)


class EntityNotFoundError(StoreRejectedError):
    """The target entity does not exist in the store."""

    code: str = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            "NOT_FOUND", f"{entity_type} not found: {entity_id}"
        )


class StoreUnavailableError(StoreError):
    """The store could not be reached or failed mid-request."""

    code: str = "STORE_UNAVAILABLE"

    def __init__(self, message: str):
        super().__init__(message)


class StoreConfigurationError(StoreError):
    """Store credentials or collection mapping are broken."""

    code: str = "STORE_MISCONFIGURED"

    def __init__(self, message: str):
        super().__init__(message)
