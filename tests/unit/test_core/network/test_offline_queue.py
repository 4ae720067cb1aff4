"""Unit tests for OfflineQueue.

Tests cover:
- FIFO enqueue, idempotency keys and capacity
- Cancel/clear semantics around the in-flight operation
- Sequential replay: success, retryable stop, non-retryable drop
- Replay budget, flush coalescing and change listeners
"""

import asyncio

import pytest

from netkeeper.core.errors import DuplicateOperationError, HttpStatusError, QueueFullError
from netkeeper.core.network.queue import MemoryQueueStore, OfflineQueue


class RecordingReplayer:
    """Replayer that records operation ids and follows a per-id script."""

    def __init__(self, failures=None):
        self.failures = dict(failures or {})
        self.replayed = []

    async def __call__(self, operation):
        self.replayed.append(operation.id)
        error = self.failures.get(operation.payload_descriptor.get("name"))
        if error is not None:
            raise error


def _descriptor(name: str) -> dict:
    return {"method": "POST", "url": "/tasks", "json_body": {"name": name}, "name": name}


class TestEnqueue:
    def test_fifo_order(self):
        queue = OfflineQueue()
        ids = [queue.enqueue(_descriptor(name)) for name in ("a", "b", "c")]

        assert [op.id for op in queue.list()] == ids
        assert queue.size() == 3
        assert len(queue) == 3

    def test_new_operation_defaults(self):
        queue = OfflineQueue()
        op_id = queue.enqueue(_descriptor("a"), idempotency_key="key-1")

        op = queue.get(op_id)
        assert op is not None
        assert op.retry_count == 0
        assert op.last_attempt_at is None
        assert op.idempotency_key == "key-1"
        assert op.payload_descriptor["name"] == "a"
        assert len(op_id) == 26

    def test_duplicate_idempotency_key(self):
        queue = OfflineQueue()
        first = queue.enqueue(_descriptor("a"), idempotency_key="same")

        with pytest.raises(DuplicateOperationError) as exc_info:
            queue.enqueue(_descriptor("b"), idempotency_key="same")

        assert exc_info.value.existing_id == first
        assert queue.size() == 1

    def test_operations_without_key_never_conflict(self):
        queue = OfflineQueue()
        queue.enqueue(_descriptor("a"))
        queue.enqueue(_descriptor("a"))
        assert queue.size() == 2

    def test_capacity(self):
        queue = OfflineQueue(max_items=2)
        queue.enqueue(_descriptor("a"))
        queue.enqueue(_descriptor("b"))

        with pytest.raises(QueueFullError) as exc_info:
            queue.enqueue(_descriptor("c"))

        assert exc_info.value.max_items == 2
        assert queue.size() == 2

    def test_list_returns_copies(self):
        queue = OfflineQueue()
        op_id = queue.enqueue(_descriptor("a"))
        queue.list()[0].retry_count = 9
        assert queue.get(op_id).retry_count == 0

    @pytest.mark.parametrize("kwargs", [{"max_items": 0}, {"max_replay_attempts": 0}])
    def test_invalid_configuration(self, kwargs):
        with pytest.raises(ValueError):
            OfflineQueue(**kwargs)


class TestCancelAndClear:
    def test_cancel_pending(self):
        queue = OfflineQueue()
        first = queue.enqueue(_descriptor("a"))
        second = queue.enqueue(_descriptor("b"))

        assert queue.cancel(first) is True
        assert [op.id for op in queue.list()] == [second]

    def test_cancel_unknown(self):
        assert OfflineQueue().cancel("missing") is False

    def test_clear(self):
        queue = OfflineQueue()
        queue.enqueue(_descriptor("a"))
        queue.enqueue(_descriptor("b"))

        assert queue.clear() == 2
        assert queue.size() == 0
        assert queue.clear() == 0

    @pytest.mark.asyncio
    async def test_in_flight_operation_cannot_be_cancelled_or_cleared(self):
        observed = {}

        async def replayer(operation):
            observed["cancel"] = queue.cancel(operation.id)
            observed["cleared"] = queue.clear()
            observed["depth"] = queue.size()

        queue = OfflineQueue(replayer)
        queue.enqueue(_descriptor("a"))
        queue.enqueue(_descriptor("b"))
        queue.enqueue(_descriptor("c"))

        result = await queue.flush()

        assert observed == {"cancel": False, "cleared": 2, "depth": 1}
        assert len(result.succeeded) == 1
        assert queue.size() == 0


class TestFlush:
    @pytest.mark.asyncio
    async def test_all_succeed_in_order(self):
        replayer = RecordingReplayer()
        queue = OfflineQueue(replayer)
        ids = [queue.enqueue(_descriptor(name)) for name in ("a", "b", "c")]

        result = await queue.flush()

        assert replayer.replayed == ids
        assert result.succeeded == ids
        assert result.failed == []
        assert result.remaining == 0
        assert queue.size() == 0

    @pytest.mark.asyncio
    async def test_retryable_failure_stops_flush(self):
        replayer = RecordingReplayer({"b": HttpStatusError(503)})
        queue = OfflineQueue(replayer)
        first = queue.enqueue(_descriptor("a"))
        second = queue.enqueue(_descriptor("b"))
        queue.enqueue(_descriptor("c"))

        result = await queue.flush()

        assert result.succeeded == [first]
        assert result.failed == []
        assert result.remaining == 2
        assert replayer.replayed == [first, second]

        head = queue.list()[0]
        assert head.id == second
        assert head.retry_count == 1
        assert head.last_attempt_at is not None

    @pytest.mark.asyncio
    async def test_non_retryable_failure_dropped_and_flush_continues(self):
        replayer = RecordingReplayer({"a": HttpStatusError(422)})
        queue = OfflineQueue(replayer)
        first = queue.enqueue(_descriptor("a"))
        second = queue.enqueue(_descriptor("b"))

        result = await queue.flush()

        assert result.failed == [first]
        assert result.succeeded == [second]
        assert result.remaining == 0

    @pytest.mark.asyncio
    async def test_retry_count_survives_until_success(self):
        replayer = RecordingReplayer({"a": HttpStatusError(503)})
        queue = OfflineQueue(replayer)
        op_id = queue.enqueue(_descriptor("a"))

        await queue.flush()
        await queue.flush()
        assert queue.get(op_id).retry_count == 2

        replayer.failures.clear()
        result = await queue.flush()
        assert result.succeeded == [op_id]

    @pytest.mark.asyncio
    async def test_replay_budget(self):
        replayer = RecordingReplayer({"a": HttpStatusError(503)})
        queue = OfflineQueue(replayer, max_replay_attempts=2)
        op_id = queue.enqueue(_descriptor("a"))
        queue.enqueue(_descriptor("b"))

        first = await queue.flush()
        assert first.remaining == 2

        second = await queue.flush()
        assert second.failed == [op_id]
        assert len(second.succeeded) == 1
        assert second.remaining == 0

    @pytest.mark.asyncio
    async def test_empty_flush(self):
        result = await OfflineQueue(RecordingReplayer()).flush()
        assert (result.succeeded, result.failed, result.remaining) == ([], [], 0)

    @pytest.mark.asyncio
    async def test_flush_without_replayer(self):
        with pytest.raises(ValueError):
            await OfflineQueue().flush()

    @pytest.mark.asyncio
    async def test_concurrent_flushes_share_one_run(self):
        gate = asyncio.Event()
        replayed = []

        async def replayer(operation):
            replayed.append(operation.id)
            await gate.wait()

        queue = OfflineQueue(replayer)
        queue.enqueue(_descriptor("a"))
        queue.enqueue(_descriptor("b"))

        first = asyncio.ensure_future(queue.flush())
        await asyncio.sleep(0)
        second = asyncio.ensure_future(queue.flush())
        await asyncio.sleep(0)
        assert queue.flushing is True

        gate.set()
        results = await asyncio.gather(first, second)

        assert results[0] is results[1]
        assert len(replayed) == 2
        assert queue.flushing is False

    @pytest.mark.asyncio
    async def test_operations_added_during_flush_are_replayed(self):
        queue = OfflineQueue()
        added = []

        async def replayer(operation):
            if not added:
                added.append(queue.enqueue(_descriptor("late")))

        queue.replayer = replayer
        queue.enqueue(_descriptor("a"))

        result = await queue.flush()

        assert len(result.succeeded) == 2
        assert result.succeeded[1] == added[0]


class TestListenersAndStore:
    def test_listener_receives_depth(self):
        queue = OfflineQueue()
        depths = []
        unsubscribe = queue.subscribe(depths.append)

        op_id = queue.enqueue(_descriptor("a"))
        queue.enqueue(_descriptor("b"))
        queue.cancel(op_id)
        unsubscribe()
        queue.clear()

        assert depths == [1, 2, 1]

    def test_failing_listener_is_isolated(self):
        queue = OfflineQueue()

        def broken(_depth):
            raise RuntimeError("listener bug")

        queue.subscribe(broken)
        queue.enqueue(_descriptor("a"))
        assert queue.size() == 1

    def test_loads_existing_operations(self):
        store = MemoryQueueStore()
        first = OfflineQueue(store=store)
        op_id = first.enqueue(_descriptor("a"))

        second = OfflineQueue(store=store)
        assert [op.id for op in second.list()] == [op_id]

    def test_store_failure_keeps_memory_state(self):
        class BrokenStore(MemoryQueueStore):
            def save(self, operations):
                raise OSError("disk full")

        queue = OfflineQueue(store=BrokenStore())
        op_id = queue.enqueue(_descriptor("a"))

        assert queue.get(op_id) is not None
