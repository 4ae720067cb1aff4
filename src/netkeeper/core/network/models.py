"""Network layer data models, enums, and protocols.

Defines the core types shared across the network sub-package:
- ErrorKind enum and ErrorClassification for retry decisions
- ConnectionState / ConnectionStatus for the connectivity monitor
- RetryAttempt / AttemptOutcome for attempt observers
- QueuedOperation (pydantic) for the offline queue
- RestoredEvent, FlushResult and DiagnosticsSnapshot payloads
- SleepFunc / HeartbeatProbe protocols for injectable I/O
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol

from pydantic import BaseModel, Field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ErrorKind(str, Enum):
    """Classification of network failures."""

    TIMEOUT = "timeout"
    CONNECTION = "connection"
    DNS = "dns"
    SERVER = "server"
    CLIENT = "client"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ErrorClassification:
    """Classification result for a failure.

    Determines whether the failure is worth retrying and what the user
    should be told about it.
    """

    kind: ErrorKind
    retryable: bool
    user_message: str
    retry_delay_hint: float = 0.0  # seconds; non-zero only for Retry-After


class ConnectionState(str, Enum):
    """States of the connectivity state machine."""

    ONLINE = "online"
    OFFLINE = "offline"
    CHECKING = "checking"


@dataclass
class ConnectionStatus:
    """Current connectivity belief, as published by the monitor."""

    online: bool
    last_checked_at: datetime = field(default_factory=utc_now)
    consecutive_failures: int = 0
    last_error: Optional[ErrorKind] = None


class AttemptOutcome(str, Enum):
    """Outcome of a single retry attempt."""

    SUCCESS = "success"
    FAILED = "failed"
    ABORTED = "aborted"


@dataclass
class RetryAttempt:
    """Information about a single attempt, handed to attempt observers."""

    attempt_number: int
    started_at: datetime
    outcome: AttemptOutcome
    error: Optional[ErrorClassification] = None
    duration: float = 0.0


@dataclass(frozen=True)
class RestoredEvent:
    """Payload of the connection-restored notification."""

    was_offline_for_ms: int
    failure_count_during_outage: int


class QueuedOperation(BaseModel):
    """A write recorded while offline, waiting to be replayed."""

    id: str = Field(..., description="ULID operation identifier")
    created_at: datetime = Field(default_factory=utc_now, description="When the operation was queued")
    payload_descriptor: Dict[str, Any] = Field(
        default_factory=dict, description="Opaque, JSON-serializable replay descriptor"
    )
    retry_count: int = Field(default=0, ge=0, description="Replay attempts so far")
    last_attempt_at: Optional[datetime] = Field(None, description="When replay was last attempted")
    idempotency_key: Optional[str] = Field(None, max_length=128, description="Caller-supplied idempotency key")


@dataclass
class FlushResult:
    """Outcome of one queue flush."""

    succeeded: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    remaining: int = 0


@dataclass
class DiagnosticsSnapshot:
    """Read-only view of the network layer for observability."""

    online: bool
    consecutive_failures: int
    average_latency_ms: Optional[float]
    queue_depth: int
    last_error: Optional[ErrorKind]
    connection_quality: str = "unknown"
    heartbeat_attempts: int = 0
    heartbeat_successes: int = 0
    pending_requests: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "online": self.online,
            "consecutive_failures": self.consecutive_failures,
            "average_latency_ms": self.average_latency_ms,
            "queue_depth": self.queue_depth,
            "last_error": self.last_error.value if self.last_error else None,
            "connection_quality": self.connection_quality,
            "heartbeat_attempts": self.heartbeat_attempts,
            "heartbeat_successes": self.heartbeat_successes,
            "pending_requests": self.pending_requests,
        }


class SleepFunc(Protocol):
    """Protocol for injectable sleep function."""

    async def __call__(self, seconds: float) -> None: ...


class HeartbeatProbe(Protocol):
    """Protocol for a connectivity probe.

    Returns normally when the server is reachable and raises otherwise.
    """

    async def __call__(self) -> None: ...
