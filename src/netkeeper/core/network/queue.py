"""Offline operation queue.

Writes attempted while the link is down are recorded here and replayed,
strictly one at a time and in FIFO order, once connectivity returns.

Replay outcome per operation:

- success: removed, reported in ``FlushResult.succeeded``
- retryable failure: stays at the front, the flush stops
- non-retryable failure (or replay budget spent): removed, reported in
  ``FlushResult.failed``, the flush continues with the next operation
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from typing import Any, Awaitable, Callable, List, Optional, Protocol

from ulid import ULID

from netkeeper.core.errors.queue import DuplicateOperationError, QueueFullError, QueueStoreError
from netkeeper.core.network.classifier import classify
from netkeeper.core.network.models import ErrorClassification, FlushResult, QueuedOperation, utc_now
from netkeeper.core.observability import audit_log

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITEMS = 100

Replayer = Callable[[QueuedOperation], Awaitable[Any]]
QueueListener = Callable[[int], Any]


class QueueStore(Protocol):
    """Persistence backend for queued operations."""

    def load(self) -> List[QueuedOperation]: ...

    def save(self, operations: List[QueuedOperation]) -> None: ...


class MemoryQueueStore:
    """Volatile store; the queue is lost when the process exits."""

    def __init__(self) -> None:
        self._operations: List[QueuedOperation] = []

    def load(self) -> List[QueuedOperation]:
        return [op.model_copy() for op in self._operations]

    def save(self, operations: List[QueuedOperation]) -> None:
        self._operations = [op.model_copy() for op in operations]


class OfflineQueue:
    """FIFO queue of pending writes with sequential replay.

    Args:
        replayer: Async callable that re-issues one queued operation; it
            raises on failure (usually ``NetworkError`` from the executor)
        store: Persistence backend (in-memory by default)
        classifier: Failure classifier used to decide keep vs. drop
        max_items: Capacity; ``enqueue`` raises ``QueueFullError`` beyond it
        max_replay_attempts: Drop an operation once this many replays have
            failed (None = retry forever)
    """

    def __init__(
        self,
        replayer: Optional[Replayer] = None,
        *,
        store: Optional[QueueStore] = None,
        classifier: Callable[[BaseException], ErrorClassification] = classify,
        max_items: int = DEFAULT_MAX_ITEMS,
        max_replay_attempts: Optional[int] = None,
    ):
        if max_items < 1:
            raise ValueError("max_items must be >= 1")
        if max_replay_attempts is not None and max_replay_attempts < 1:
            raise ValueError("max_replay_attempts must be >= 1")

        self.replayer = replayer
        self._store: QueueStore = store or MemoryQueueStore()
        self._classifier = classifier
        self.max_items = max_items
        self.max_replay_attempts = max_replay_attempts

        self._items: List[QueuedOperation] = self._store.load()
        self._in_flight_id: Optional[str] = None
        self._flush_task: Optional[asyncio.Task[FlushResult]] = None
        self._listeners: List[QueueListener] = []

        if self._items:
            logger.info("Loaded %d queued operation(s) from store", len(self._items))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _persist(self) -> None:
        try:
            self._store.save(self._items)
        except (OSError, QueueStoreError) as e:
            logger.error("Failed to persist offline queue (%d items kept in memory): %s", len(self._items), e)

    def _changed(self) -> None:
        self._persist()
        depth = len(self._items)
        for listener in list(self._listeners):
            try:
                listener(depth)
            except Exception:
                logger.exception("Queue listener %r failed", listener)

    def _remove(self, operation_id: str) -> None:
        self._items = [op for op in self._items if op.id != operation_id]
        self._changed()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def enqueue(self, descriptor: dict, *, idempotency_key: Optional[str] = None) -> str:
        """Append a write to the back of the queue.

        Args:
            descriptor: JSON-serializable replay descriptor
            idempotency_key: Optional key; at most one pending operation per key

        Returns:
            The new operation's id

        Raises:
            DuplicateOperationError: An operation with the same key is queued
            QueueFullError: The queue is at capacity
        """
        if idempotency_key is not None:
            for op in self._items:
                if op.idempotency_key == idempotency_key:
                    raise DuplicateOperationError(
                        "Operation already queued",
                        idempotency_key=idempotency_key,
                        existing_id=op.id,
                    )

        if len(self._items) >= self.max_items:
            raise QueueFullError(
                f"Offline queue is full ({self.max_items} operations)",
                max_items=self.max_items,
            )

        operation = QueuedOperation(
            id=str(ULID()),
            payload_descriptor=dict(descriptor),
            idempotency_key=idempotency_key,
        )
        self._items.append(operation)
        self._changed()

        logger.info("Queued operation %s (%d pending)", operation.id, len(self._items))
        audit_log("operation_queued", operation_id=operation.id, queue_depth=len(self._items))
        return operation.id

    def size(self) -> int:
        return len(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def list(self) -> List[QueuedOperation]:
        """Snapshot of pending operations in replay order."""
        return [op.model_copy() for op in self._items]

    def get(self, operation_id: str) -> Optional[QueuedOperation]:
        for op in self._items:
            if op.id == operation_id:
                return op.model_copy()
        return None

    def cancel(self, operation_id: str) -> bool:
        """Remove a pending operation.

        Returns:
            False if the operation is unknown or currently being replayed
        """
        if operation_id == self._in_flight_id:
            logger.debug("Refusing to cancel in-flight operation %s", operation_id)
            return False
        if not any(op.id == operation_id for op in self._items):
            return False

        self._remove(operation_id)
        audit_log("operation_cancelled", operation_id=operation_id)
        return True

    def clear(self) -> int:
        """Remove every pending operation except one being replayed.

        Returns:
            Number of operations removed
        """
        kept = [op for op in self._items if op.id == self._in_flight_id]
        removed = len(self._items) - len(kept)
        if removed:
            self._items = kept
            self._changed()
        return removed

    def subscribe(self, listener: QueueListener) -> Callable[[], None]:
        """Register a listener called with the queue depth after every change."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            with suppress(ValueError):
                self._listeners.remove(listener)

        return unsubscribe

    @property
    def flushing(self) -> bool:
        return self._flush_task is not None and not self._flush_task.done()

    async def flush(self) -> FlushResult:
        """Replay pending operations in order.

        Concurrent callers share the flush already in progress.
        """
        if self.replayer is None:
            raise ValueError("OfflineQueue has no replayer configured")
        if self._flush_task is None or self._flush_task.done():
            self._flush_task = asyncio.ensure_future(self._flush(self.replayer))
        return await asyncio.shield(self._flush_task)

    def _budget_spent(self, operation: QueuedOperation) -> bool:
        return self.max_replay_attempts is not None and operation.retry_count >= self.max_replay_attempts

    async def _flush(self, replayer: Replayer) -> FlushResult:
        result = FlushResult()

        while self._items:
            operation = self._items[0]
            self._in_flight_id = operation.id
            operation.retry_count += 1
            operation.last_attempt_at = utc_now()
            self._persist()

            try:
                await replayer(operation)
            except Exception as e:
                classification = self._classifier(e)
                if classification.retryable and not self._budget_spent(operation):
                    logger.info(
                        "Replay of %s failed (%s), keeping it at the front",
                        operation.id,
                        classification.kind.value,
                    )
                    break

                logger.warning(
                    "Dropping queued operation %s after %d replay(s): %s",
                    operation.id,
                    operation.retry_count,
                    classification.kind.value,
                )
                audit_log(
                    "replay_dropped",
                    operation_id=operation.id,
                    retry_count=operation.retry_count,
                    error_kind=classification.kind.value,
                )
                self._remove(operation.id)
                result.failed.append(operation.id)
                continue
            finally:
                self._in_flight_id = None

            self._remove(operation.id)
            result.succeeded.append(operation.id)

        result.remaining = len(self._items)
        if result.succeeded or result.failed:
            audit_log(
                "queue_flushed",
                succeeded=len(result.succeeded),
                failed=len(result.failed),
                remaining=result.remaining,
            )
        return result
