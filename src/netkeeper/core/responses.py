"""
Standard response envelope used by the CLI and by ``error_to_response``.

Every command emits ``{"success", "data", "error", "meta"}`` so that scripts
driving the CLI can branch on ``success`` and read ``data.error_code``.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Union

from netkeeper.core.context import get_correlation_id


class ErrorCode(str, Enum):
    """Machine-readable error codes.

    Codes follow SCREAMING_SNAKE_CASE convention.
    """

    # Validation errors
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_FORMAT = "INVALID_FORMAT"

    # Resource errors
    NOT_FOUND = "NOT_FOUND"
    DUPLICATE_ENTRY = "DUPLICATE_ENTRY"

    # Capacity errors
    QUEUE_FULL = "QUEUE_FULL"

    # Network errors
    NETWORK_ERROR = "NETWORK_ERROR"
    OFFLINE = "OFFLINE"
    QUEUED_OFFLINE = "QUEUED_OFFLINE"
    ABORTED = "ABORTED"

    # System errors
    INTERNAL_ERROR = "INTERNAL_ERROR"
    UNAVAILABLE = "UNAVAILABLE"
    IO_ERROR = "IO_ERROR"


class ErrorType(str, Enum):
    """Error categories for routing and client-side handling."""

    VALIDATION = "validation"  # No retry, fix input
    NOT_FOUND = "not_found"  # No retry
    CONFLICT = "conflict"  # Maybe retry, check state
    RESOURCE = "resource"  # Retry after draining
    NETWORK = "network"  # Yes, with backoff
    CANCELLED = "cancelled"  # No retry
    INTERNAL = "internal"
    UNAVAILABLE = "unavailable"  # Yes, with backoff
    IO = "io"


@dataclass
class Response:
    """
    Standard response structure.

    Attributes:
        success: Whether the operation completed successfully
        data: The primary payload (operation-specific structured data)
        error: Error message if success is False, None otherwise
        meta: Response metadata
    """

    success: bool
    data: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    meta: Dict[str, Any] = field(default_factory=lambda: {"version": "response-v1"})


def _build_meta(request_id: Optional[str] = None) -> Dict[str, Any]:
    meta: Dict[str, Any] = {"version": "response-v1"}
    effective_request_id = request_id or get_correlation_id() or None
    if effective_request_id:
        meta["request_id"] = effective_request_id
    return meta


def success_response(
    data: Optional[Mapping[str, Any]] = None,
    *,
    request_id: Optional[str] = None,
    **fields: Any,
) -> Response:
    """Create a standardized success response.

    Args:
        data: Optional mapping used as the base payload.
        request_id: Correlation identifier propagated through logs.
        **fields: Additional payload fields (shorthand for ``data.update``).
    """
    payload: Dict[str, Any] = {}
    if data:
        payload.update(dict(data))
    if fields:
        payload.update(fields)
    return Response(success=True, data=payload, error=None, meta=_build_meta(request_id))


def error_response(
    message: str,
    *,
    data: Optional[Mapping[str, Any]] = None,
    error_code: Optional[Union[ErrorCode, str]] = None,
    error_type: Optional[Union[ErrorType, str]] = None,
    remediation: Optional[str] = None,
    details: Optional[Mapping[str, Any]] = None,
    request_id: Optional[str] = None,
) -> Response:
    """Create a standardized error response.

    Args:
        message: Human-readable description of the failure.
        data: Optional mapping with additional machine-readable context.
        error_code: Canonical error code (``ErrorCode`` or string).
        error_type: Error category for routing (``ErrorType`` or string).
        remediation: User-facing guidance on how to fix the issue.
        details: Nested structure describing the failure.
        request_id: Correlation identifier propagated through logs.

    Example:
        >>> error_response(
        ...     "Queued operation not found: 01HV...",
        ...     error_code=ErrorCode.NOT_FOUND,
        ...     error_type=ErrorType.NOT_FOUND,
        ... )
    """
    payload: Dict[str, Any] = {}
    if data:
        payload.update(dict(data))

    effective_code = error_code if error_code is not None else ErrorCode.INTERNAL_ERROR
    effective_type = error_type if error_type is not None else ErrorType.INTERNAL

    if "error_code" not in payload:
        payload["error_code"] = effective_code.value if isinstance(effective_code, Enum) else effective_code
    if "error_type" not in payload:
        payload["error_type"] = effective_type.value if isinstance(effective_type, Enum) else effective_type
    if remediation is not None and "remediation" not in payload:
        payload["remediation"] = remediation
    if details and "details" not in payload:
        payload["details"] = dict(details)

    return Response(success=False, data=payload, error=message, meta=_build_meta(request_id))
