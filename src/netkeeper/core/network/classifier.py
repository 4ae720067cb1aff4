"""Failure classification for retry decisions.

``classify`` maps any exception raised by a network operation (optionally
together with the HTTP response that produced it) onto an ``ErrorKind``,
a retryable flag and a fixed user-facing message. It is a pure function:
no I/O, no logging, no state.

Priority order (first match wins):

1. timeouts
2. HTTP status >= 500
3. HTTP 408 / 429
4. other HTTP 4xx (not retryable)
5. DNS resolution failures
6. generic connection failures
7. anything else (not retryable)
"""

from __future__ import annotations

import asyncio
import socket
from typing import Any, Mapping, Optional

import httpx

from netkeeper.core.errors.network import HttpStatusError, NetworkError
from netkeeper.core.network.models import ErrorClassification, ErrorKind

USER_MESSAGES: Mapping[ErrorKind, str] = {
    ErrorKind.TIMEOUT: "Connection timed out. The server is taking too long to respond.",
    ErrorKind.CONNECTION: "Network connection unavailable. Please check your internet connection.",
    ErrorKind.DNS: "Cannot reach the server. There may be a DNS issue.",
    ErrorKind.SERVER: "The server is experiencing issues. Please try again later.",
    ErrorKind.CLIENT: "The request was rejected by the server. Please check the entered data.",
    ErrorKind.UNKNOWN: "Connection issue detected. Please try again.",
}

RETRYABLE_CLIENT_STATUSES = frozenset({408, 429})

_TIMEOUT_MARKERS = ("timed out", "timeout")
_DNS_MARKERS = (
    "name or service not known",
    "nodename nor servname",
    "getaddrinfo",
    "enotfound",
    "err_name_not_resolved",
    "name resolution",
    "dns",
)
_CONNECTION_MARKERS = (
    "failed to fetch",
    "connection refused",
    "connection reset",
    "connection aborted",
    "connection",
    "network",
    "unreachable",
)


def _make(kind: ErrorKind, retryable: bool, retry_delay_hint: float = 0.0) -> ErrorClassification:
    return ErrorClassification(
        kind=kind,
        retryable=retryable,
        user_message=USER_MESSAGES[kind],
        retry_delay_hint=retry_delay_hint,
    )


def parse_retry_after(headers: Optional[Mapping[str, Any]]) -> Optional[float]:
    """Parse a numeric ``Retry-After`` header.

    Date-valued headers are not supported and return ``None``.

    Args:
        headers: Response headers (httpx ``Headers`` or a plain mapping)

    Returns:
        Seconds to wait, or ``None`` if the header is missing or unparseable.
    """
    if not headers:
        return None
    retry_after = headers.get("Retry-After")
    if retry_after is None:
        # Plain dicts are case-sensitive
        retry_after = headers.get("retry-after")
    if retry_after is None:
        return None
    try:
        value = float(retry_after)
    except (TypeError, ValueError):
        return None
    if value < 0:
        return None
    return value


def _iter_chain(error: BaseException):
    """Yield the error followed by its cause/context chain."""
    seen = set()
    current: Optional[BaseException] = error
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or current.__context__


def _status_and_headers(
    error: Optional[BaseException], response: Any
) -> tuple[Optional[int], Optional[Mapping[str, Any]]]:
    source: Any = response
    if source is None and error is not None:
        if isinstance(error, HttpStatusError):
            return error.status_code, error.headers
        if isinstance(error, httpx.HTTPStatusError):
            source = error.response
        else:
            source = error
    if source is None:
        return None, None

    status = getattr(source, "status_code", None)
    if status is None:
        status = getattr(source, "status", None)
    if not isinstance(status, int) or isinstance(status, bool):
        return None, None
    return status, getattr(source, "headers", None)


def _is_timeout(error: BaseException) -> bool:
    return isinstance(error, (TimeoutError, asyncio.TimeoutError, httpx.TimeoutException))


def _has_marker(error: BaseException, markers: tuple[str, ...]) -> bool:
    for exc in _iter_chain(error):
        text = f"{type(exc).__name__}: {exc}".lower()
        if any(marker in text for marker in markers):
            return True
    return False


def classify(error: Optional[BaseException], response: Any = None) -> ErrorClassification:
    """Classify a failure.

    Args:
        error: Exception raised by the operation (may be None when only a
            response is available)
        response: Optional HTTP response (anything with ``status_code`` or
            ``status`` and ``headers``)

    Returns:
        ErrorClassification for the failure
    """
    if isinstance(error, NetworkError):
        return error.classification

    if error is not None and _is_timeout(error):
        return _make(ErrorKind.TIMEOUT, retryable=True)

    status, headers = _status_and_headers(error, response)

    if status is None and error is not None and _has_marker(error, _TIMEOUT_MARKERS):
        return _make(ErrorKind.TIMEOUT, retryable=True)

    if status is not None:
        if status >= 500 or status in RETRYABLE_CLIENT_STATUSES:
            hint = parse_retry_after(headers) or 0.0
            return _make(ErrorKind.SERVER, retryable=True, retry_delay_hint=hint)
        if 400 <= status < 500:
            return _make(ErrorKind.CLIENT, retryable=False)

    if error is None:
        return _make(ErrorKind.UNKNOWN, retryable=False)

    for exc in _iter_chain(error):
        if isinstance(exc, socket.gaierror):
            return _make(ErrorKind.DNS, retryable=True)
    if _has_marker(error, _DNS_MARKERS):
        return _make(ErrorKind.DNS, retryable=True)

    if isinstance(error, (ConnectionError, httpx.TransportError)):
        return _make(ErrorKind.CONNECTION, retryable=True)
    if _has_marker(error, _CONNECTION_MARKERS):
        return _make(ErrorKind.CONNECTION, retryable=True)

    return _make(ErrorKind.UNKNOWN, retryable=False)
