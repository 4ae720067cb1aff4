"""Unified error hierarchy for netkeeper.

All custom exception classes are defined in domain-specific modules within
this package. This __init__.py re-exports everything for convenient access.

Usage:
    from netkeeper.core.errors import NetworkError, OperationQueuedError

    # Registry helper
    from netkeeper.core.errors import error_to_response
"""

# --- Base / Registry ---
from netkeeper.core.errors.base import ERROR_MAPPINGS, error_to_response

# --- Network errors ---
from netkeeper.core.errors.network import (
    HttpStatusError,
    NetworkError,
    OfflineShortCircuit,
    OperationAbortedError,
    OperationQueuedError,
)

# --- Queue errors ---
from netkeeper.core.errors.queue import (
    DuplicateOperationError,
    QueueError,
    QueueFullError,
    QueueStoreError,
)

__all__ = [
    # Base / Registry
    "ERROR_MAPPINGS",
    "error_to_response",
    # Network errors
    "NetworkError",
    "OperationAbortedError",
    "OfflineShortCircuit",
    "OperationQueuedError",
    "HttpStatusError",
    # Queue errors
    "QueueError",
    "QueueFullError",
    "QueueStoreError",
    "DuplicateOperationError",
]
