"""Offline queue error classes."""

from typing import Optional


class QueueError(Exception):
    """Base class for offline queue errors."""


class QueueFullError(QueueError):
    """Queue has reached its configured capacity.

    Attributes:
        max_items: Configured capacity.
    """

    def __init__(self, message: str, max_items: Optional[int] = None):
        super().__init__(message)
        self.max_items = max_items


class DuplicateOperationError(QueueError):
    """An operation with the same idempotency key is already queued.

    Attributes:
        idempotency_key: The conflicting key.
        existing_id: Id of the operation already holding the key.
    """

    def __init__(
        self,
        message: str,
        idempotency_key: Optional[str] = None,
        existing_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.idempotency_key = idempotency_key
        self.existing_id = existing_id


class QueueStoreError(QueueError):
    """Queue store could not be read or written.

    Attributes:
        path: Backing file, when the store is file based.
    """

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path
