"""Resilient client: the single entry point of the network layer.

Composes the connectivity monitor, the retry executor and the offline
queue. Callers hand ``execute`` an async operation; reads are retried and
then surface a ``NetworkError``; queueable writes issued while the link is
down are stored and surface ``OperationQueuedError`` carrying the queued id.

Example:
    async with ResilientClient.from_config() as client:
        try:
            order = await client.request("POST", "/orders", json=payload, idempotency_key=order_key)
        except OperationQueuedError as e:
            show_toast(str(e))  # "Saved offline - will sync when online"
"""

from __future__ import annotations

import asyncio
import logging
import random
from contextlib import suppress
from dataclasses import replace
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, List, Optional, Set, TypeVar, Union

from netkeeper.core.context import correlation_scope
from netkeeper.core.errors.network import (
    NetworkError,
    OfflineShortCircuit,
    OperationAbortedError,
    OperationQueuedError,
)
from netkeeper.core.errors.queue import DuplicateOperationError
from netkeeper.core.network.connectivity import ConnectivityMonitor, RestoredListener, StatusListener
from netkeeper.core.network.diagnostics import grade_connection
from netkeeper.core.network.heartbeat import HttpHeartbeat
from netkeeper.core.network.models import (
    DiagnosticsSnapshot,
    ErrorClassification,
    ErrorKind,
    FlushResult,
    QueuedOperation,
    RetryAttempt,
    SleepFunc,
)
from netkeeper.core.network.queue import OfflineQueue
from netkeeper.core.network.retry import OFFLINE, CancellationToken, RetryExecutor, RetryPolicy
from netkeeper.core.network.storage import FileQueueStore
from netkeeper.core.network.transport import HttpTransport, RequestDescriptor

if TYPE_CHECKING:
    from netkeeper.config import ClientConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")

Descriptor = Union[RequestDescriptor, Dict[str, Any]]

# Terminal failures of these kinds suggest the link itself is down
LINK_FAILURE_KINDS = frozenset({ErrorKind.CONNECTION, ErrorKind.DNS, ErrorKind.TIMEOUT})


class ResilientClient:
    """Façade over monitor, executor and offline queue.

    Args:
        monitor: Connectivity monitor (owned by this client)
        executor: Retry executor (one attached to ``monitor`` is built if omitted)
        queue: Offline queue (in-memory queue if omitted)
        transport: HTTP transport used by ``request`` and by queue replay
    """

    def __init__(
        self,
        monitor: ConnectivityMonitor,
        *,
        executor: Optional[RetryExecutor] = None,
        queue: Optional[OfflineQueue] = None,
        transport: Optional[HttpTransport] = None,
    ):
        self.monitor = monitor
        self.executor = executor or RetryExecutor(monitor=monitor)
        if self.executor.monitor is None:
            self.executor.monitor = monitor
        self.transport = transport
        self.queue = queue or OfflineQueue()
        if self.queue.replayer is None:
            self.queue.replayer = self._replay

        self._in_flight: Dict[str, asyncio.Task[Any]] = {}
        self._tokens: Dict[str, CancellationToken] = {}
        self._background: Set[asyncio.Task[Any]] = set()
        self._check_task: Optional[asyncio.Task[bool]] = None
        self._owned_resources: List[Any] = []

        self._unsubscribe_restored = self.monitor.on_restored(self._handle_restored)

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_config(
        cls,
        config: Optional["ClientConfig"] = None,
        *,
        initial_online: bool = True,
        sleep_func: Optional[SleepFunc] = None,
        rng: Optional[random.Random] = None,
    ) -> "ResilientClient":
        """Build the full stack (httpx heartbeat, transport, queue store) from config."""
        if config is None:
            from netkeeper.config import get_config

            config = get_config()

        endpoints = config.heartbeat.resolve_endpoints(config.base_url)
        if not endpoints:
            raise ValueError("No heartbeat endpoints configured: set base_url or heartbeat.endpoints")

        probe = HttpHeartbeat(
            endpoints,
            method=config.heartbeat.method,
            timeout=config.heartbeat.timeout,
        )
        monitor = ConnectivityMonitor(
            probe,
            initial_online=initial_online,
            heartbeat_interval=config.heartbeat.interval,
            heartbeat_timeout=config.heartbeat.timeout,
            offline_base_delay=config.heartbeat.offline_base_delay,
            offline_max_delay=config.heartbeat.offline_max_delay,
            sleep_func=sleep_func,
        )
        policy = RetryPolicy(
            max_attempts=config.retry.max_attempts,
            base_delay=config.retry.base_delay,
            max_delay=config.retry.max_delay,
            jitter=config.retry.jitter,
            attempt_timeout=config.retry.attempt_timeout,
        )
        executor = RetryExecutor(monitor=monitor, default_policy=policy, rng=rng, sleep_func=sleep_func)

        store = FileQueueStore(config.queue.storage_path) if config.queue.storage_path else None
        queue = OfflineQueue(
            store=store,
            max_items=config.queue.max_items,
            max_replay_attempts=config.queue.max_replay_attempts,
        )
        transport = HttpTransport(config.base_url, timeout=config.retry.attempt_timeout or 10.0)

        client = cls(monitor, executor=executor, queue=queue, transport=transport)
        client._owned_resources = [probe, transport]
        return client

    # ------------------------------------------------------------------
    # Background work
    # ------------------------------------------------------------------

    def _spawn(self, coro: Awaitable[Any], name: str) -> "asyncio.Task[Any]":
        task = asyncio.ensure_future(coro)
        self._background.add(task)

        def _done(t: "asyncio.Task[Any]") -> None:
            self._background.discard(t)
            if t.cancelled():
                return
            exc = t.exception()
            if exc is not None:
                logger.error("Background %s failed: %s", name, exc, exc_info=exc)

        task.add_done_callback(_done)
        return task

    def _handle_restored(self, event: Any) -> None:
        if self.queue.size() == 0:
            return
        logger.info("Connection restored, replaying %d queued operation(s)", self.queue.size())
        self._spawn(self.flush_queue(), "queue flush")

    def _schedule_check(self) -> None:
        if self._check_task is None or self._check_task.done():
            self._check_task = self._spawn(self.monitor.check_now(), "connectivity check")

    async def _replay(self, operation: QueuedOperation) -> Any:
        if self.transport is None:
            raise ValueError("Cannot replay queued operations without a transport")
        transport = self.transport
        policy = replace(self.executor.default_policy, queue_when_offline=False)
        return await self.executor.execute_with_retry(lambda: transport.replay(operation), policy)

    # ------------------------------------------------------------------
    # Queue helpers
    # ------------------------------------------------------------------

    def _enqueue(self, descriptor: Descriptor, idempotency_key: Optional[str] = None) -> str:
        if isinstance(descriptor, RequestDescriptor):
            payload = descriptor.to_payload()
            idempotency_key = idempotency_key or descriptor.idempotency_key
        else:
            payload = dict(descriptor)
            idempotency_key = idempotency_key or payload.get("idempotency_key")
        try:
            return self.queue.enqueue(payload, idempotency_key=idempotency_key)
        except DuplicateOperationError as e:
            if e.existing_id is None:
                raise
            logger.info("Operation with key %s already queued as %s", idempotency_key, e.existing_id)
            return e.existing_id

    def enqueue_if_offline(self, descriptor: Descriptor) -> Optional[str]:
        """Queue ``descriptor`` when offline.

        Returns:
            The queued operation id, or None when online (nothing queued)
        """
        if self.monitor.is_online():
            return None
        return self._enqueue(descriptor)

    async def flush_queue(self) -> FlushResult:
        """Replay queued operations now (shares an in-progress flush)."""
        if self.queue.size() == 0 and not self.queue.flushing:
            return FlushResult()
        return await self.queue.flush()

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def _queued(self, descriptor: Descriptor, classification: ErrorClassification, attempts: int) -> OperationQueuedError:
        operation_id = self._enqueue(descriptor)
        return OperationQueuedError(classification, operation_id=operation_id, attempts=attempts)

    async def execute(
        self,
        op: Callable[[], Awaitable[T]],
        *,
        queueable: bool = False,
        descriptor: Optional[Descriptor] = None,
        policy: Optional[RetryPolicy] = None,
        token: Optional[CancellationToken] = None,
        on_attempt: Optional[Callable[[RetryAttempt], None]] = None,
    ) -> T:
        """Run ``op`` through the retry executor.

        Args:
            op: Zero-argument async callable
            queueable: Store the write for replay instead of failing when
                the link is down (at call time, or confirmed by a heartbeat
                after exhausted connection/DNS/timeout retries)
            descriptor: Replay descriptor (required when ``queueable``)
            policy: Retry policy override
            token: Cancellation token for this call
            on_attempt: Per-attempt observer

        Raises:
            OperationQueuedError: The write was stored in the offline queue
            OperationAbortedError: The token was cancelled
            NetworkError: Terminal failure
            QueueFullError: The write should have been queued but the queue is full
        """
        policy = policy or self.executor.default_policy
        if queueable and descriptor is None:
            raise ValueError("Queueable operations require a replay descriptor")
        replayable = descriptor if queueable else None

        with correlation_scope():
            if replayable is not None:
                if not self.monitor.is_online():
                    raise self._queued(replayable, OFFLINE, attempts=0)
                policy = replace(policy, queue_when_offline=True)

            try:
                return await self.executor.execute_with_retry(op, policy, token=token, on_attempt=on_attempt)
            except OfflineShortCircuit as e:
                if replayable is not None:
                    raise self._queued(replayable, e.classification, attempts=e.attempts) from e
                raise
            except OperationAbortedError:
                raise
            except NetworkError as e:
                if e.kind not in LINK_FAILURE_KINDS:
                    raise
                if replayable is None:
                    self._schedule_check()
                    raise
                # Queue only when a heartbeat confirms the link is down; the
                # restored event then replays the write
                if await self.monitor.check_now():
                    raise
                raise self._queued(replayable, e.classification, attempts=e.attempts) from e

    async def request(
        self,
        method: str,
        url: str,
        *,
        json: Any = None,
        headers: Optional[Dict[str, str]] = None,
        queueable: Optional[bool] = None,
        idempotency_key: Optional[str] = None,
        token: Optional[CancellationToken] = None,
        policy: Optional[RetryPolicy] = None,
        on_attempt: Optional[Callable[[RetryAttempt], None]] = None,
    ) -> Any:
        """Issue an HTTP request through the transport.

        Writes (POST/PUT/PATCH/DELETE) are queueable unless ``queueable`` is
        given. Concurrent requests with the same ``idempotency_key`` share a
        single in-flight call, which ``cancel_request(key)`` can abort.
        """
        if self.transport is None:
            raise ValueError("ResilientClient.request requires a transport")

        descriptor = RequestDescriptor(
            method=method,
            url=url,
            json_body=json,
            headers=headers or {},
            idempotency_key=idempotency_key,
        )
        if queueable is None:
            queueable = descriptor.is_write

        def run(run_token: Optional[CancellationToken]) -> Awaitable[Any]:
            return self.execute(
                self.transport.operation(descriptor),
                queueable=queueable,
                descriptor=descriptor,
                policy=policy,
                token=run_token,
                on_attempt=on_attempt,
            )

        if idempotency_key is None:
            return await run(token)

        existing = self._in_flight.get(idempotency_key)
        if existing is not None:
            logger.debug("Joining in-flight request for key %s", idempotency_key)
            return await asyncio.shield(existing)

        run_token = token or CancellationToken()
        task: asyncio.Task[Any] = asyncio.ensure_future(run(run_token))
        self._in_flight[idempotency_key] = task
        self._tokens[idempotency_key] = run_token

        def _cleanup(t: "asyncio.Task[Any]") -> None:
            if self._in_flight.get(idempotency_key) is t:
                del self._in_flight[idempotency_key]
                self._tokens.pop(idempotency_key, None)
            if not t.cancelled():
                # Mark retrieved: joined callers may all have gone away
                t.exception()

        task.add_done_callback(_cleanup)
        return await asyncio.shield(task)

    def cancel_request(self, idempotency_key: str) -> bool:
        """Abort the in-flight request holding ``idempotency_key``.

        Returns:
            False if no such request is in flight
        """
        token = self._tokens.get(idempotency_key)
        if token is None:
            return False
        token.cancel("cancelled by caller")
        return True

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def is_online(self) -> bool:
        return self.monitor.is_online()

    def on_status_change(self, listener: StatusListener) -> Callable[[], None]:
        """Subscribe to ONLINE <-> OFFLINE transitions."""
        return self.monitor.subscribe(listener)

    def on_restored(self, listener: RestoredListener) -> Callable[[], None]:
        return self.monitor.on_restored(listener)

    def get_diagnostics(self) -> DiagnosticsSnapshot:
        status = self.monitor.get_status()
        heartbeat = self.monitor.get_diagnostics()
        average = self.monitor.average_latency_ms
        return DiagnosticsSnapshot(
            online=status.online,
            consecutive_failures=status.consecutive_failures,
            average_latency_ms=average,
            queue_depth=self.queue.size(),
            last_error=status.last_error,
            connection_quality=grade_connection(status.online, average),
            heartbeat_attempts=heartbeat["total_attempts"],
            heartbeat_successes=heartbeat["successful_attempts"],
            pending_requests=len(self._in_flight),
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start heartbeats; replay anything persisted by a previous run.

        Persisted operations are replayed only after a heartbeat confirms
        the connection, never on the seeded ``initial_online`` flag alone.
        """
        await self.monitor.start()
        if self.queue.size() and await self.monitor.check_now():
            self._spawn(self.flush_queue(), "queue flush")

    async def stop(self) -> None:
        """Stop heartbeats and cancel background work."""
        await self.monitor.stop()
        tasks = [t for t in self._background if not t.done()]
        for task in tasks:
            task.cancel()
        for task in tasks:
            with suppress(asyncio.CancelledError):
                await task

    async def aclose(self) -> None:
        """Stop and release resources built by ``from_config``."""
        await self.stop()
        self._unsubscribe_restored()
        for resource in self._owned_resources:
            await resource.aclose()
        self._owned_resources = []

    async def __aenter__(self) -> "ResilientClient":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
