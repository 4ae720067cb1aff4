"""Integration-style tests for ResilientClient.

The transport runs against httpx.MockTransport and the heartbeat is a
scripted probe, so every scenario is deterministic and offline.
"""

import asyncio
import json

import httpx
import pytest

from netkeeper.config import ClientConfig
from netkeeper.core.errors import NetworkError, OperationAbortedError, OperationQueuedError
from netkeeper.core.network.client import ResilientClient
from netkeeper.core.network.connectivity import ConnectivityMonitor
from netkeeper.core.network.models import ErrorKind, FlushResult
from netkeeper.core.network.retry import RetryExecutor, RetryPolicy
from netkeeper.core.network.transport import IDEMPOTENCY_HEADER, HttpTransport

BASE_URL = "https://api.test"


async def _drain(rounds: int = 10) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def build_client(fake_sleep, seeded_rng, make_probe):
    """Factory building a client around a scripted probe and a mock server."""

    def _build(handler, *, probe=None, initial_online=True, policy=None):
        probe = probe or make_probe(None)
        monitor = ConnectivityMonitor(probe, initial_online=initial_online, sleep_func=fake_sleep)
        executor = RetryExecutor(
            monitor=monitor,
            default_policy=policy or RetryPolicy(max_attempts=3),
            rng=seeded_rng,
            sleep_func=fake_sleep,
        )
        http = httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(handler))
        client = ResilientClient(monitor, executor=executor, transport=HttpTransport(BASE_URL, client=http))
        return client

    return _build


def _ok(request):
    return httpx.Response(200, json={"path": request.url.path})


class TestReads:
    @pytest.mark.asyncio
    async def test_successful_read(self, build_client):
        client = build_client(_ok)
        assert await client.request("GET", "/items") == {"path": "/items"}

    @pytest.mark.asyncio
    async def test_client_error_is_not_queued(self, build_client):
        client = build_client(lambda request: httpx.Response(404))

        with pytest.raises(NetworkError) as exc_info:
            await client.request("GET", "/missing")

        assert not isinstance(exc_info.value, OperationQueuedError)
        assert exc_info.value.kind == ErrorKind.CLIENT
        assert exc_info.value.attempts == 1
        assert client.queue.size() == 0

    @pytest.mark.asyncio
    async def test_reads_still_attempted_while_offline(self, build_client):
        client = build_client(_ok, initial_online=False)
        assert await client.request("GET", "/items") == {"path": "/items"}

    @pytest.mark.asyncio
    async def test_read_link_failure_schedules_check(self, build_client, make_probe):
        probe = make_probe(httpx.ConnectError("down"))

        def handler(request):
            raise httpx.ConnectError("down", request=request)

        client = build_client(handler, probe=probe)

        with pytest.raises(NetworkError):
            await client.request("GET", "/items")

        await _drain()
        assert probe.calls == 1
        assert client.is_online() is False


class TestQueueableWrites:
    @pytest.mark.asyncio
    async def test_offline_write_is_queued_without_sending(self, build_client):
        sent = []
        client = build_client(lambda request: sent.append(request) or httpx.Response(201), initial_online=False)

        with pytest.raises(OperationQueuedError) as exc_info:
            await client.request("POST", "/orders", json={"total": 5})

        error = exc_info.value
        assert str(error) == "Saved offline - will sync when online"
        assert error.attempts == 0
        assert client.queue.get(error.operation_id).payload_descriptor["url"] == "/orders"
        assert sent == []

    @pytest.mark.asyncio
    async def test_exhausted_write_queued_when_heartbeat_fails(self, build_client, make_probe):
        probe = make_probe(httpx.ConnectError("down"))

        def handler(request):
            raise httpx.ConnectError("down", request=request)

        client = build_client(handler, probe=probe)

        with pytest.raises(OperationQueuedError) as exc_info:
            await client.request("POST", "/orders", json={})

        assert exc_info.value.attempts == 3
        assert exc_info.value.kind == ErrorKind.CONNECTION
        assert client.queue.size() == 1
        assert probe.calls == 1
        assert client.is_online() is False

    @pytest.mark.asyncio
    async def test_exhausted_write_raised_when_heartbeat_succeeds(self, build_client, make_probe):
        probe = make_probe(None)

        def handler(request):
            raise httpx.ConnectError("down", request=request)

        client = build_client(handler, probe=probe)

        with pytest.raises(NetworkError) as exc_info:
            await client.request("POST", "/orders", json={})

        assert not isinstance(exc_info.value, OperationQueuedError)
        assert exc_info.value.kind == ErrorKind.CONNECTION
        assert probe.calls == 1
        assert client.queue.size() == 0
        assert client.is_online() is True

    @pytest.mark.asyncio
    async def test_server_errors_while_online_are_not_queued(self, build_client, make_probe):
        probe = make_probe(None)
        sent = []
        client = build_client(lambda request: sent.append(request) or httpx.Response(503), probe=probe)

        with pytest.raises(NetworkError) as exc_info:
            await client.request("POST", "/orders", json={}, idempotency_key="order-9")

        assert not isinstance(exc_info.value, OperationQueuedError)
        assert exc_info.value.kind == ErrorKind.SERVER
        assert exc_info.value.attempts == 3
        assert len(sent) == 3
        assert client.queue.size() == 0

        assert await client.monitor.check_now() is True
        assert client.queue.size() == 0

    @pytest.mark.asyncio
    async def test_link_drop_during_backoff_queues_write(self, build_client):
        sent = []
        client = build_client(lambda request: sent.append(request) or httpx.Response(503))

        def go_offline(attempt):
            client.monitor.on_platform_offline()

        with pytest.raises(OperationQueuedError) as exc_info:
            await client.request("POST", "/orders", json={}, on_attempt=go_offline)

        assert exc_info.value.attempts == 1
        assert len(sent) == 1
        assert client.queue.size() == 1

    @pytest.mark.asyncio
    async def test_non_retryable_write_fails(self, build_client):
        client = build_client(lambda request: httpx.Response(422, json={"error": "bad"}))

        with pytest.raises(NetworkError) as exc_info:
            await client.request("POST", "/orders", json={})

        assert not isinstance(exc_info.value, OperationQueuedError)
        assert exc_info.value.kind == ErrorKind.CLIENT
        assert client.queue.size() == 0

    @pytest.mark.asyncio
    async def test_explicitly_non_queueable_write(self, build_client):
        client = build_client(_ok, initial_online=False)
        assert await client.request("POST", "/ping", queueable=False) == {"path": "/ping"}

    @pytest.mark.asyncio
    async def test_same_key_queued_once(self, build_client):
        client = build_client(_ok, initial_online=False)

        ids = []
        for _ in range(2):
            with pytest.raises(OperationQueuedError) as exc_info:
                await client.request("POST", "/orders", json={}, idempotency_key="order-1")
            ids.append(exc_info.value.operation_id)

        assert ids[0] == ids[1]
        assert client.queue.size() == 1

    @pytest.mark.asyncio
    async def test_execute_with_dict_descriptor(self, build_client):
        client = build_client(_ok, initial_online=False)
        calls = []

        async def op():
            calls.append(1)

        with pytest.raises(OperationQueuedError):
            await client.execute(op, queueable=True, descriptor={"method": "POST", "url": "/x"})

        assert calls == []

    @pytest.mark.asyncio
    async def test_queueable_requires_descriptor(self, build_client):
        client = build_client(_ok)

        async def op():
            return None

        with pytest.raises(ValueError):
            await client.execute(op, queueable=True)

    @pytest.mark.asyncio
    async def test_enqueue_if_offline(self, build_client):
        online = build_client(_ok)
        offline = build_client(_ok, initial_online=False)
        descriptor = {"method": "POST", "url": "/x"}

        assert online.enqueue_if_offline(descriptor) is None
        assert offline.enqueue_if_offline(descriptor) is not None
        assert offline.queue.size() == 1


class TestReplay:
    @pytest.mark.asyncio
    async def test_restored_connection_flushes_queue(self, build_client, make_probe):
        received = []

        def handler(request):
            received.append((request.method, request.url.path, request.headers.get(IDEMPOTENCY_HEADER)))
            return httpx.Response(201, json={})

        client = build_client(handler, probe=make_probe(None), initial_online=False)
        drained = asyncio.Event()
        client.queue.subscribe(lambda depth: depth == 0 and drained.set())

        for n in range(2):
            with pytest.raises(OperationQueuedError):
                await client.request("POST", f"/orders/{n}", json={"n": n}, idempotency_key=f"k{n}")

        assert await client.monitor.check_now() is True
        await asyncio.wait_for(drained.wait(), timeout=1)

        assert received == [("POST", "/orders/0", "k0"), ("POST", "/orders/1", "k1")]

    @pytest.mark.asyncio
    async def test_replay_failure_keeps_operation(self, build_client):
        client = build_client(lambda request: httpx.Response(503), initial_online=False)

        with pytest.raises(OperationQueuedError) as exc_info:
            await client.request("PATCH", "/orders/1", json={})

        result = await client.flush_queue()

        assert result.remaining == 1
        assert client.queue.get(exc_info.value.operation_id).retry_count == 1

    @pytest.mark.asyncio
    async def test_flush_empty_queue(self, build_client):
        assert await build_client(_ok).flush_queue() == FlushResult()

    @pytest.mark.asyncio
    async def test_start_replays_persisted_operations_after_heartbeat(self, build_client, make_probe):
        probe = make_probe(None)
        received = []
        client = build_client(lambda request: received.append(request.url.path) or httpx.Response(200), probe=probe)
        client.queue.enqueue({"method": "DELETE", "url": "/items/4"})
        drained = asyncio.Event()
        client.queue.subscribe(lambda depth: depth == 0 and drained.set())

        await client.start()
        await asyncio.wait_for(drained.wait(), timeout=1)
        await client.stop()

        assert probe.calls >= 1
        assert received == ["/items/4"]

    @pytest.mark.asyncio
    async def test_start_does_not_replay_without_confirmed_connection(self, build_client, make_probe):
        probe = make_probe(httpx.ConnectError("down"))
        received = []
        client = build_client(lambda request: received.append(request.url.path) or httpx.Response(200), probe=probe)
        client.queue.enqueue({"method": "POST", "url": "/orders/1"})

        await client.start()
        await _drain()
        await client.stop()

        assert probe.calls >= 1
        assert received == []
        assert client.queue.size() == 1
        assert client.is_online() is False


class TestInFlightRequests:
    @pytest.mark.asyncio
    async def test_same_key_shares_one_call(self, build_client):
        gate = asyncio.Event()
        calls = []

        async def handler(request):
            calls.append(json.loads(request.content))
            await gate.wait()
            return httpx.Response(200, json={"calls": len(calls)})

        client = build_client(handler)

        first = asyncio.ensure_future(client.request("PUT", "/items/1", json={"v": 1}, idempotency_key="put-1"))
        await _drain(3)
        second = asyncio.ensure_future(client.request("PUT", "/items/1", json={"v": 1}, idempotency_key="put-1"))
        await _drain(3)
        assert client.get_diagnostics().pending_requests == 1

        gate.set()
        assert await first == {"calls": 1}
        assert await second == {"calls": 1}
        assert calls == [{"v": 1}]

    @pytest.mark.asyncio
    async def test_cancel_request_aborts_without_queueing(self, build_client):
        async def handler(request):
            await asyncio.Event().wait()

        client = build_client(handler)
        run = asyncio.ensure_future(client.request("POST", "/slow", json={}, idempotency_key="slow-1"))
        await _drain(3)

        assert client.cancel_request("slow-1") is True

        with pytest.raises(OperationAbortedError):
            await run

        assert client.queue.size() == 0
        await _drain(3)
        assert client.cancel_request("slow-1") is False


class TestStatusAndDiagnostics:
    @pytest.mark.asyncio
    async def test_snapshot(self, build_client, make_probe):
        client = build_client(_ok, probe=make_probe(httpx.ConnectError("x")))
        changes = []
        client.on_status_change(lambda status: changes.append(status.online))

        await client.monitor.check_now()
        client.enqueue_if_offline({"method": "POST", "url": "/x"})

        snapshot = client.get_diagnostics()
        assert snapshot.online is False
        assert snapshot.consecutive_failures == 1
        assert snapshot.queue_depth == 1
        assert snapshot.last_error == ErrorKind.CONNECTION
        assert snapshot.connection_quality == "offline"
        assert snapshot.heartbeat_attempts == 1
        assert snapshot.to_dict()["last_error"] == "connection"
        assert changes == [False]


class TestFromConfig:
    @pytest.mark.asyncio
    async def test_builds_stack_from_config(self, tmp_path):
        config = ClientConfig(base_url="https://api.test")
        config.retry.max_attempts = 5
        config.queue.max_items = 7
        config.queue.storage_path = str(tmp_path / "queue.json")

        client = ResilientClient.from_config(config)
        try:
            assert client.executor.default_policy.max_attempts == 5
            assert client.queue.max_items == 7
            assert client.transport.base_url == "https://api.test"
            assert client.executor.monitor is client.monitor

            client.queue.enqueue({"method": "POST", "url": "/x"})
            assert (tmp_path / "queue.json").exists()
        finally:
            await client.aclose()

    def test_requires_endpoints(self):
        with pytest.raises(ValueError):
            ResilientClient.from_config(ClientConfig())
