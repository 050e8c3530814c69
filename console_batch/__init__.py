"""
console_batch -- Bulk operations over many entities with live progress.

Fans one administrative action (create/renew/suspend/delete licenses,
archive/restore budgets) out across a list of target ids, with a bounded
worker pool per operation, cooperative cancellation, and per-unit
success/failure accounting.  ``OperationsConsole`` wires it together with
the kernel's workflow state machine.

Architecture:
    console_batch/ is a top-level package.  Nothing in console_kernel/
    imports from console_batch.
"""
