"""Network resilience layer.

Public API:
    - classify: failure -> ErrorClassification
    - ConnectivityMonitor / HttpHeartbeat: online belief from heartbeats
    - RetryExecutor / RetryPolicy / CancellationToken: retrying execution
    - OfflineQueue / MemoryQueueStore / FileQueueStore: pending writes
    - HttpTransport / RequestDescriptor: httpx transport
    - ResilientClient: the composed façade
"""

from netkeeper.core.network.classifier import USER_MESSAGES, classify, parse_retry_after
from netkeeper.core.network.client import ResilientClient
from netkeeper.core.network.connectivity import ConnectivityMonitor
from netkeeper.core.network.diagnostics import LatencyWindow, grade_connection
from netkeeper.core.network.heartbeat import HttpHeartbeat
from netkeeper.core.network.models import (
    AttemptOutcome,
    ConnectionState,
    ConnectionStatus,
    DiagnosticsSnapshot,
    ErrorClassification,
    ErrorKind,
    FlushResult,
    HeartbeatProbe,
    QueuedOperation,
    RestoredEvent,
    RetryAttempt,
    SleepFunc,
)
from netkeeper.core.network.queue import MemoryQueueStore, OfflineQueue, QueueStore
from netkeeper.core.network.retry import (
    CancellationToken,
    RetryExecutor,
    RetryPolicy,
    compute_backoff_delay,
)
from netkeeper.core.network.storage import FileQueueStore
from netkeeper.core.network.transport import HttpTransport, RequestDescriptor

__all__ = [
    # Classification
    "classify",
    "parse_retry_after",
    "USER_MESSAGES",
    "ErrorKind",
    "ErrorClassification",
    # Connectivity
    "ConnectivityMonitor",
    "HttpHeartbeat",
    "HeartbeatProbe",
    "ConnectionState",
    "ConnectionStatus",
    "RestoredEvent",
    "LatencyWindow",
    "grade_connection",
    # Retry
    "RetryExecutor",
    "RetryPolicy",
    "CancellationToken",
    "RetryAttempt",
    "AttemptOutcome",
    "compute_backoff_delay",
    "SleepFunc",
    # Queue
    "OfflineQueue",
    "QueueStore",
    "MemoryQueueStore",
    "FileQueueStore",
    "QueuedOperation",
    "FlushResult",
    # Transport / client
    "HttpTransport",
    "RequestDescriptor",
    "ResilientClient",
    "DiagnosticsSnapshot",
]
