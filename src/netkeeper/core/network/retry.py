"""Retrying executor with exponential backoff and jitter.

Runs a zero-argument async operation under a ``RetryPolicy``. Each failure
is classified; non-retryable failures surface at once, retryable ones are
retried with capped exponential backoff until the attempt budget is spent.
Callers only ever see ``NetworkError`` (or a subclass) with the raw error
chained as ``__cause__``.

Delay before attempt ``n + 1``::

    min(max_delay, base_delay * 2 ** (n - 1) * (1 + U(0, jitter)))

unless the failure carried a ``Retry-After`` hint, which is used verbatim.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from contextlib import suppress
from dataclasses import dataclass
from typing import TYPE_CHECKING, Awaitable, Callable, List, Optional, TypeVar

from netkeeper.core.errors.network import NetworkError, OfflineShortCircuit, OperationAbortedError
from netkeeper.core.network.classifier import USER_MESSAGES, classify
from netkeeper.core.network.models import (
    AttemptOutcome,
    ErrorClassification,
    ErrorKind,
    RetryAttempt,
    SleepFunc,
    utc_now,
)
from netkeeper.core.observability import audit_log

if TYPE_CHECKING:
    from netkeeper.core.network.connectivity import ConnectivityMonitor

logger = logging.getLogger(__name__)

T = TypeVar("T")

AttemptObserver = Callable[[RetryAttempt], None]
Classifier = Callable[[BaseException], ErrorClassification]

ABORTED = ErrorClassification(
    kind=ErrorKind.UNKNOWN,
    retryable=False,
    user_message="The operation was cancelled.",
)

OFFLINE = ErrorClassification(
    kind=ErrorKind.CONNECTION,
    retryable=True,
    user_message=USER_MESSAGES[ErrorKind.CONNECTION],
)


class CancellationToken:
    """Per-operation cancellation signal.

    One token belongs to one logical operation; cancelling it interrupts
    that operation's in-flight attempt (when the policy is abortable) and
    its backoff wait, and nothing else.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: Optional[str] = None) -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


@dataclass(frozen=True)
class RetryPolicy:
    """Retry budget and backoff parameters.

    Attributes:
        max_attempts: Total attempts including the first (>= 1)
        base_delay: Backoff base in seconds
        max_delay: Backoff cap in seconds
        jitter: Upper bound of the random multiplier added to each delay
        attempt_timeout: Per-attempt timeout in seconds (None = unbounded)
        abortable: Whether a cancellation token interrupts in-flight attempts
        queue_when_offline: Short-circuit before the first attempt when the
            monitor believes the link is down
    """

    max_attempts: int = 3
    base_delay: float = 0.5
    max_delay: float = 10.0
    jitter: float = 0.3
    attempt_timeout: Optional[float] = None
    abortable: bool = True
    queue_when_offline: bool = False

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must be non-negative")
        if self.jitter < 0:
            raise ValueError("jitter must be non-negative")
        if self.attempt_timeout is not None and self.attempt_timeout <= 0:
            raise ValueError("attempt_timeout must be positive")


def compute_backoff_delay(
    attempt: int,
    policy: RetryPolicy,
    rng: Optional[random.Random] = None,
) -> float:
    """Delay to wait after failed attempt number ``attempt`` (1-based)."""
    _rng = rng or random.Random()
    delay = policy.base_delay * (2 ** (attempt - 1))
    delay *= 1.0 + _rng.uniform(0.0, policy.jitter)
    return min(policy.max_delay, delay)


class _AttemptAborted(Exception):
    """Internal signal: the token fired while an attempt was in flight."""


class RetryExecutor:
    """Executes async operations with classification-driven retries.

    Args:
        monitor: Optional connectivity monitor consulted for offline
            short-circuiting
        classifier: Failure classifier (defaults to ``classify``)
        default_policy: Policy used when a call does not pass one
        rng: Injectable Random instance for deterministic jitter
        sleep_func: Injectable sleep function for time control in tests
        clock: Monotonic clock in seconds (attempt durations)

    Example:
        >>> executor = RetryExecutor()
        >>> body = await executor.execute_with_retry(lambda: transport.send(descriptor))

    Testing example:
        >>> delays = []
        >>> async def fake_sleep(s): delays.append(s)
        >>> executor = RetryExecutor(rng=random.Random(42), sleep_func=fake_sleep)
    """

    def __init__(
        self,
        *,
        monitor: Optional["ConnectivityMonitor"] = None,
        classifier: Classifier = classify,
        default_policy: Optional[RetryPolicy] = None,
        rng: Optional[random.Random] = None,
        sleep_func: Optional[SleepFunc] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.monitor = monitor
        self.classifier = classifier
        self.default_policy = default_policy or RetryPolicy()
        self._rng = rng or random.Random()
        self._sleep = sleep_func or asyncio.sleep
        self._clock = clock or time.monotonic
        self._observers: List[AttemptObserver] = []

    def add_observer(self, observer: AttemptObserver) -> Callable[[], None]:
        """Register an observer called once per attempt of every run."""
        self._observers.append(observer)

        def remove() -> None:
            with suppress(ValueError):
                self._observers.remove(observer)

        return remove

    def _report(self, attempt: RetryAttempt, on_attempt: Optional[AttemptObserver]) -> None:
        observers = list(self._observers)
        if on_attempt is not None:
            observers.append(on_attempt)
        for observer in observers:
            try:
                observer(attempt)
            except Exception:
                logger.exception("Attempt observer %r failed", observer)

    async def _call(self, op: Callable[[], Awaitable[T]], policy: RetryPolicy) -> T:
        if policy.attempt_timeout is not None:
            return await asyncio.wait_for(op(), timeout=policy.attempt_timeout)
        return await op()

    async def _run_attempt(
        self,
        op: Callable[[], Awaitable[T]],
        policy: RetryPolicy,
        token: Optional[CancellationToken],
    ) -> T:
        if token is None or not policy.abortable:
            return await self._call(op, policy)

        task = asyncio.ensure_future(self._call(op, policy))
        waiter = asyncio.ensure_future(token.wait())
        try:
            done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            waiter.cancel()
            raise
        if not waiter.done():
            waiter.cancel()

        if task in done:
            return task.result()

        task.cancel()
        # Consume the outcome so an exception raised while unwinding is not reported as unretrieved
        task.add_done_callback(lambda t: t.cancelled() or t.exception())
        raise _AttemptAborted()

    async def _backoff(self, delay: float, token: Optional[CancellationToken]) -> bool:
        """Wait ``delay`` seconds. Returns False if the token fired first."""
        if token is None:
            await self._sleep(delay)
            return True
        if token.cancelled:
            return False

        sleeper = asyncio.ensure_future(self._sleep(delay))
        waiter = asyncio.ensure_future(token.wait())
        try:
            await asyncio.wait({sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for pending in (sleeper, waiter):
                if not pending.done():
                    pending.cancel()
        return not token.cancelled

    def _aborted(self, attempts: int, cause: Optional[BaseException] = None) -> OperationAbortedError:
        audit_log("operation_aborted", attempts=attempts)
        logger.info("Operation aborted after %d attempt(s)", attempts)
        error = OperationAbortedError(ABORTED, attempts=attempts)
        error.__cause__ = cause
        return error

    async def execute_with_retry(
        self,
        op: Callable[[], Awaitable[T]],
        policy: Optional[RetryPolicy] = None,
        *,
        token: Optional[CancellationToken] = None,
        on_attempt: Optional[AttemptObserver] = None,
    ) -> T:
        """Run ``op`` until it succeeds, fails terminally, or is cancelled.

        Args:
            op: Zero-argument async callable (use a lambda for arguments)
            policy: Retry policy (defaults to the executor's default policy)
            token: Optional cancellation token for this call
            on_attempt: Optional per-call attempt observer

        Returns:
            The operation's result

        Raises:
            OfflineShortCircuit: ``queue_when_offline`` and the monitor is offline
            OperationAbortedError: The token was cancelled
            NetworkError: Non-retryable failure or retry budget exhausted
        """
        policy = policy or self.default_policy

        attempt = 0
        while True:
            attempt += 1
            if token is not None and token.cancelled:
                raise self._aborted(attempt - 1)

            # Checked before every attempt: the link may drop during a backoff
            if policy.queue_when_offline and self.monitor is not None and not self.monitor.is_online():
                logger.debug("Short-circuiting attempt %d: monitor reports offline", attempt)
                raise OfflineShortCircuit(OFFLINE, attempts=attempt - 1)

            started_at = utc_now()
            started = self._clock()
            try:
                result = await self._run_attempt(op, policy, token)
            except _AttemptAborted:
                self._report(
                    RetryAttempt(
                        attempt_number=attempt,
                        started_at=started_at,
                        outcome=AttemptOutcome.ABORTED,
                        duration=self._clock() - started,
                    ),
                    on_attempt,
                )
                raise self._aborted(attempt) from None
            except Exception as e:
                classification = self.classifier(e)
                self._report(
                    RetryAttempt(
                        attempt_number=attempt,
                        started_at=started_at,
                        outcome=AttemptOutcome.FAILED,
                        error=classification,
                        duration=self._clock() - started,
                    ),
                    on_attempt,
                )

                if not classification.retryable or attempt >= policy.max_attempts:
                    if classification.retryable:
                        audit_log(
                            "retry_exhausted",
                            attempts=attempt,
                            error_kind=classification.kind.value,
                        )
                    logger.warning(
                        "Operation failed after %d attempt(s): %s (%s)",
                        attempt,
                        classification.kind.value,
                        e,
                    )
                    raise NetworkError(classification, attempts=attempt) from e

                if classification.retry_delay_hint > 0:
                    delay = classification.retry_delay_hint
                else:
                    delay = compute_backoff_delay(attempt, policy, self._rng)

                audit_log(
                    "retry_attempt",
                    attempt=attempt,
                    max_attempts=policy.max_attempts,
                    delay_seconds=round(delay, 3),
                    error_kind=classification.kind.value,
                )
                logger.info(
                    "Attempt %d/%d failed (%s), retrying in %.2fs",
                    attempt,
                    policy.max_attempts,
                    classification.kind.value,
                    delay,
                )

                if not await self._backoff(delay, token):
                    raise self._aborted(attempt, cause=e)
                continue

            self._report(
                RetryAttempt(
                    attempt_number=attempt,
                    started_at=started_at,
                    outcome=AttemptOutcome.SUCCESS,
                    duration=self._clock() - started,
                ),
                on_attempt,
            )
            return result
