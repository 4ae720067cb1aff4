"""Error-to-ErrorCode mapping registry.

Provides a centralized mapping from exception types to (ErrorCode, ErrorType) tuples,
enabling consistent error response generation across the CLI.

Usage:
    from netkeeper.core.errors.base import error_to_response

    try:
        do_something()
    except Exception as e:
        result = error_to_response(e)
        if result is not None:
            return result
        raise  # Unknown error, re-raise
"""

from __future__ import annotations

from typing import Dict, Optional, Tuple, Type

from netkeeper.core.errors.network import (
    HttpStatusError,
    NetworkError,
    OfflineShortCircuit,
    OperationAbortedError,
    OperationQueuedError,
)
from netkeeper.core.errors.queue import DuplicateOperationError, QueueFullError, QueueStoreError
from netkeeper.core.responses import ErrorCode, ErrorType

ERROR_MAPPINGS: Dict[Type[Exception], Tuple[ErrorCode, ErrorType]] = {
    # --- Network errors ---
    NetworkError: (ErrorCode.NETWORK_ERROR, ErrorType.NETWORK),
    OperationAbortedError: (ErrorCode.ABORTED, ErrorType.CANCELLED),
    OfflineShortCircuit: (ErrorCode.OFFLINE, ErrorType.UNAVAILABLE),
    OperationQueuedError: (ErrorCode.QUEUED_OFFLINE, ErrorType.UNAVAILABLE),
    HttpStatusError: (ErrorCode.NETWORK_ERROR, ErrorType.NETWORK),
    # --- Queue errors ---
    QueueFullError: (ErrorCode.QUEUE_FULL, ErrorType.RESOURCE),
    DuplicateOperationError: (ErrorCode.DUPLICATE_ENTRY, ErrorType.CONFLICT),
    QueueStoreError: (ErrorCode.IO_ERROR, ErrorType.IO),
}


def error_to_response(exc: Exception) -> Optional[dict]:
    """Convert a known exception to a standard error_response dict, or None if unknown.

    Looks up the exception's *exact* type in ERROR_MAPPINGS and, if found,
    generates a standardized error response using the mapped ErrorCode and ErrorType.

    Args:
        exc: The exception to convert.

    Returns:
        A response dict, or None if the exception type is not registered
        in ERROR_MAPPINGS.
    """
    mapping = ERROR_MAPPINGS.get(type(exc))
    if mapping is None:
        return None

    from dataclasses import asdict

    from netkeeper.core.responses import error_response

    code, error_type = mapping
    data = {}
    if isinstance(exc, NetworkError):
        data["error_kind"] = exc.kind.value
        data["attempts"] = exc.attempts
    if isinstance(exc, OperationQueuedError):
        data["operation_id"] = exc.operation_id
    return asdict(error_response(str(exc), data=data, error_code=code, error_type=error_type))
