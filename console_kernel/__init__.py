"""
Console Kernel - workflow state engine and remote action gateway.

Client-resident core of the operations console:
- Per-entity status lifecycle with optimistic apply and rollback
- A single gateway for every mutation, with timeout and typed failures
- Pluggable remote stores (SQL, PostgREST over HTTP)
- Structured JSON logging
"""

__version__ = "0.1.0"
