"""Network error classes.

``NetworkError`` is the single normalized error callers see: its message is
the user-facing text derived from the failure classification, and the raw
transport error is kept only as ``__cause__``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Mapping, Optional

if TYPE_CHECKING:
    from netkeeper.core.network.models import ErrorClassification


class NetworkError(Exception):
    """Operation failed after the retry budget was spent (or could not be retried).

    Attributes:
        classification: Classification of the last failure.
        attempts: Number of attempts made.
    """

    def __init__(
        self,
        classification: ErrorClassification,
        attempts: int = 0,
        message: Optional[str] = None,
    ):
        super().__init__(message or classification.user_message)
        self.classification = classification
        self.attempts = attempts

    @property
    def kind(self):
        return self.classification.kind

    @property
    def retryable(self) -> bool:
        return self.classification.retryable

    @property
    def user_message(self) -> str:
        return self.classification.user_message


class OperationAbortedError(NetworkError):
    """Operation was cancelled through its cancellation token."""


class OfflineShortCircuit(NetworkError):
    """A queueable write was stopped before an attempt because the link is down."""


class OperationQueuedError(NetworkError):
    """The write was stored in the offline queue instead of being sent.

    Attributes:
        operation_id: Id of the queued operation.
    """

    def __init__(
        self,
        classification: ErrorClassification,
        operation_id: str,
        attempts: int = 0,
    ):
        super().__init__(
            classification,
            attempts=attempts,
            message="Saved offline - will sync when online",
        )
        self.operation_id = operation_id


class HttpStatusError(Exception):
    """Transport received a non-success HTTP status.

    Attributes:
        status_code: HTTP status code.
        headers: Response headers.
        body: Response body text (may be truncated).
    """

    def __init__(
        self,
        status_code: int,
        headers: Optional[Mapping[str, str]] = None,
        body: str = "",
        url: Optional[str] = None,
    ):
        super().__init__(f"HTTP {status_code}" + (f" for {url}" if url else ""))
        self.status_code = status_code
        self.headers: Mapping[str, Any] = headers or {}
        self.body = body
        self.url = url
