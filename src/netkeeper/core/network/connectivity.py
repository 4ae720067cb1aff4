"""Connectivity monitor.

Maintains the layer's belief about whether the remote API is reachable,
combining periodic heartbeats with platform online/offline signals.

State machine::

    ONLINE --tick/forced check--> CHECKING --success--> ONLINE
                                  CHECKING --failure--> OFFLINE
    OFFLINE --backoff tick/forced check--> CHECKING
    any --platform offline--> OFFLINE      (no heartbeat)
    any --platform online--> CHECKING      (forced heartbeat)

Only one heartbeat is ever in flight. ``check_now()`` issued while a
heartbeat is running awaits that heartbeat instead of starting another.

Example:
    monitor = ConnectivityMonitor(HttpHeartbeat(["https://api.example.com/health"]))
    monitor.subscribe(lambda status: print("online" if status.online else "offline"))
    await monitor.start()
"""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import suppress
from dataclasses import replace
from typing import Any, Callable, Dict, List, Optional, Set

from netkeeper.core.network.classifier import classify
from netkeeper.core.network.diagnostics import DEFAULT_LATENCY_WINDOW, LatencyWindow, grade_connection
from netkeeper.core.network.models import (
    ConnectionState,
    ConnectionStatus,
    ErrorKind,
    HeartbeatProbe,
    RestoredEvent,
    SleepFunc,
    utc_now,
)
from netkeeper.core.observability import audit_log

logger = logging.getLogger(__name__)

StatusListener = Callable[[ConnectionStatus], Any]
RestoredListener = Callable[[RestoredEvent], Any]


def _dispatch(listener: Callable[[Any], Any], payload: Any, background: Set["asyncio.Task[Any]"]) -> None:
    """Call a listener, isolating its failures.

    Coroutine results are scheduled as background tasks.
    """
    try:
        result = listener(payload)
    except Exception:
        logger.exception("Connectivity listener %r failed", listener)
        return

    if asyncio.iscoroutine(result):
        task = asyncio.ensure_future(result)
        background.add(task)

        def _done(t: "asyncio.Task[Any]") -> None:
            background.discard(t)
            if not t.cancelled() and t.exception() is not None:
                logger.error("Async connectivity listener %r failed", listener, exc_info=t.exception())

        task.add_done_callback(_done)


class ConnectivityMonitor:
    """Tracks online/offline state from heartbeats and platform signals.

    Args:
        probe: Async callable that returns when the server is reachable and
            raises otherwise
        initial_online: Platform's synchronous connectivity flag at startup
        heartbeat_interval: Seconds between heartbeats while online
        heartbeat_timeout: Upper bound for a single heartbeat in seconds
        offline_base_delay: First re-check delay while offline (seconds)
        offline_max_delay: Cap for the offline re-check backoff (seconds)
        sleep_func: Injectable sleep used by the scheduling loop
        clock: Monotonic clock in seconds (for latency and outage duration)
        latency_window: Number of heartbeat latencies kept for averaging
    """

    def __init__(
        self,
        probe: HeartbeatProbe,
        *,
        initial_online: bool = True,
        heartbeat_interval: float = 30.0,
        heartbeat_timeout: float = 5.0,
        offline_base_delay: float = 5.0,
        offline_max_delay: float = 60.0,
        sleep_func: Optional[SleepFunc] = None,
        clock: Optional[Callable[[], float]] = None,
        latency_window: int = DEFAULT_LATENCY_WINDOW,
    ):
        self._probe = probe
        self.heartbeat_interval = heartbeat_interval
        self.heartbeat_timeout = heartbeat_timeout
        self.offline_base_delay = offline_base_delay
        self.offline_max_delay = offline_max_delay
        self._sleep = sleep_func or asyncio.sleep
        self._clock = clock or time.monotonic

        self._status = ConnectionStatus(online=initial_online)
        self._checking = False

        self._status_listeners: List[StatusListener] = []
        self._restored_listeners: List[RestoredListener] = []
        self._lost_listeners: List[StatusListener] = []
        self._background: Set[asyncio.Task[Any]] = set()

        self._heartbeat_task: Optional[asyncio.Task[bool]] = None
        self._loop_task: Optional[asyncio.Task[None]] = None
        self._running = False

        self._offline_since: Optional[float] = None if initial_online else self._clock()
        self._outage_failures = 0

        self._attempts = 0
        self._successes = 0
        self._latency = LatencyWindow(latency_window)

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        if self._checking:
            return ConnectionState.CHECKING
        return ConnectionState.ONLINE if self._status.online else ConnectionState.OFFLINE

    def get_status(self) -> ConnectionStatus:
        """Return a copy of the current status."""
        return replace(self._status)

    def is_online(self) -> bool:
        return self._status.online

    @property
    def running(self) -> bool:
        return self._running

    @property
    def average_latency_ms(self) -> Optional[float]:
        return self._latency.average

    def get_diagnostics(self) -> Dict[str, Any]:
        """Return heartbeat counters, endpoint failures and latency data."""
        average = self._latency.average
        return {
            "state": self.state.value,
            "online": self._status.online,
            "consecutive_failures": self._status.consecutive_failures,
            "last_error": self._status.last_error.value if self._status.last_error else None,
            "total_attempts": self._attempts,
            "successful_attempts": self._successes,
            "failed_endpoints": dict(getattr(self._probe, "failed_endpoints", {}) or {}),
            "last_successful_endpoint": getattr(self._probe, "last_successful_endpoint", None),
            "average_latency_ms": average,
            "recent_latencies_ms": self._latency.samples(),
            "connection_quality": grade_connection(self._status.online, average),
        }

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    @staticmethod
    def _remover(listeners: List[Any], listener: Any) -> Callable[[], None]:
        def unsubscribe() -> None:
            with suppress(ValueError):
                listeners.remove(listener)

        return unsubscribe

    def subscribe(self, listener: StatusListener) -> Callable[[], None]:
        """Register a listener fired on every ONLINE <-> OFFLINE transition.

        Returns:
            Callable that removes the listener
        """
        self._status_listeners.append(listener)
        return self._remover(self._status_listeners, listener)

    def on_restored(self, listener: RestoredListener) -> Callable[[], None]:
        """Register a listener fired once per OFFLINE -> ONLINE transition."""
        self._restored_listeners.append(listener)
        return self._remover(self._restored_listeners, listener)

    def on_lost(self, listener: StatusListener) -> Callable[[], None]:
        """Register a listener fired once per ONLINE -> OFFLINE transition."""
        self._lost_listeners.append(listener)
        return self._remover(self._lost_listeners, listener)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _go_offline(self, kind: ErrorKind, *, count_failure: bool) -> None:
        was_online = self._status.online
        failures = self._status.consecutive_failures + (1 if count_failure else 0)
        self._status = ConnectionStatus(
            online=False,
            last_checked_at=utc_now(),
            consecutive_failures=failures,
            last_error=kind,
        )

        if was_online:
            self._offline_since = self._clock()
            self._outage_failures = 0
        if count_failure:
            self._outage_failures += 1

        if not was_online:
            return

        logger.warning("Connection lost (%s, %d consecutive failures)", kind.value, failures)
        audit_log("connection_lost", error_kind=kind.value, consecutive_failures=failures)
        snapshot = self.get_status()
        for listener in list(self._status_listeners):
            _dispatch(listener, snapshot, self._background)
        for listener in list(self._lost_listeners):
            _dispatch(listener, snapshot, self._background)

    def _go_online(self) -> None:
        was_online = self._status.online
        self._status = ConnectionStatus(online=True, last_checked_at=utc_now())

        if was_online:
            return

        offline_for = 0.0
        if self._offline_since is not None:
            offline_for = max(0.0, self._clock() - self._offline_since)
        event = RestoredEvent(
            was_offline_for_ms=int(offline_for * 1000),
            failure_count_during_outage=self._outage_failures,
        )
        self._offline_since = None
        self._outage_failures = 0

        logger.info("Connection restored after %d ms", event.was_offline_for_ms)
        audit_log(
            "connection_restored",
            was_offline_for_ms=event.was_offline_for_ms,
            failure_count_during_outage=event.failure_count_during_outage,
        )
        snapshot = self.get_status()
        for listener in list(self._status_listeners):
            _dispatch(listener, snapshot, self._background)
        for listener in list(self._restored_listeners):
            _dispatch(listener, event, self._background)

    async def _run_heartbeat(self) -> bool:
        self._checking = True
        self._attempts += 1
        started = self._clock()
        try:
            await asyncio.wait_for(self._probe(), timeout=self.heartbeat_timeout)
        except asyncio.CancelledError:
            self._checking = False
            raise
        except Exception as e:
            self._checking = False
            kind = classify(e).kind
            logger.debug("Heartbeat failed: %s (%s)", e, kind.value)
            audit_log(
                "heartbeat_failed",
                error_kind=kind.value,
                consecutive_failures=self._status.consecutive_failures + 1,
            )
            self._go_offline(kind, count_failure=True)
            return False

        self._checking = False
        self._latency.add((self._clock() - started) * 1000.0)
        self._successes += 1
        self._go_online()
        return True

    def _ensure_heartbeat(self) -> "asyncio.Task[bool]":
        if self._heartbeat_task is None or self._heartbeat_task.done():
            self._heartbeat_task = asyncio.ensure_future(self._run_heartbeat())
        return self._heartbeat_task

    async def check_now(self) -> bool:
        """Run a heartbeat now, or join the one already in flight.

        Returns:
            True if the heartbeat succeeded
        """
        return await asyncio.shield(self._ensure_heartbeat())

    def on_platform_offline(self) -> None:
        """Platform reported loss of connectivity: go offline without probing."""
        logger.info("Platform reported offline")
        self._go_offline(ErrorKind.CONNECTION, count_failure=False)

    def on_platform_online(self) -> "asyncio.Task[bool]":
        """Platform reported connectivity: force a heartbeat (never assume success).

        Returns:
            The heartbeat task (shared with concurrent ``check_now()`` callers)
        """
        logger.info("Platform reported online, forcing heartbeat")
        return self._ensure_heartbeat()

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def next_delay(self) -> float:
        """Delay before the next scheduled heartbeat."""
        if self._status.online:
            return self.heartbeat_interval
        exponent = max(0, self._status.consecutive_failures - 1)
        return min(self.offline_max_delay, self.offline_base_delay * (2**exponent))

    async def _schedule_loop(self) -> None:
        while self._running:
            await self._sleep(self.next_delay())
            if not self._running:
                break
            await self.check_now()

    async def start(self) -> None:
        """Start periodic heartbeats. Idempotent."""
        if self._running:
            return
        self._running = True
        self._loop_task = asyncio.ensure_future(self._schedule_loop())
        logger.debug("Connectivity monitor started (interval=%ss)", self.heartbeat_interval)

    async def stop(self) -> None:
        """Stop periodic heartbeats and cancel any in-flight heartbeat."""
        self._running = False
        tasks = [t for t in (self._loop_task, self._heartbeat_task) if t is not None and not t.done()]
        tasks.extend(t for t in self._background if not t.done())
        for task in tasks:
            task.cancel()
        for task in tasks:
            with suppress(asyncio.CancelledError):
                await task
        self._loop_task = None
        self._heartbeat_task = None
        self._checking = False
        logger.debug("Connectivity monitor stopped")
