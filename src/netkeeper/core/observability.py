"""Structured event logging for the network resilience layer.

Connection transitions, retries, queue activity and replay outcomes are
written as structured events to a dedicated logger so that they can be
filtered, shipped or turned into UI toasts independently of ordinary
diagnostic logging.

Usage:
    from netkeeper.core.observability import audit_log

    audit_log("connection_lost", consecutive_failures=1, error_kind="timeout")
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from netkeeper.core.context import get_correlation_id

logger = logging.getLogger(__name__)


class NetworkEventType(Enum):
    """Types of network lifecycle events."""

    CONNECTION_LOST = "connection_lost"
    CONNECTION_RESTORED = "connection_restored"
    HEARTBEAT_FAILED = "heartbeat_failed"
    RETRY_ATTEMPT = "retry_attempt"
    RETRY_EXHAUSTED = "retry_exhausted"
    OPERATION_ABORTED = "operation_aborted"
    OPERATION_QUEUED = "operation_queued"
    OPERATION_CANCELLED = "operation_cancelled"
    QUEUE_FLUSHED = "queue_flushed"
    REPLAY_DROPPED = "replay_dropped"
    OTHER = "other"


@dataclass
class NetworkEvent:
    """Structured network event."""

    event_type: NetworkEventType
    details: Dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    correlation_id: Optional[str] = None

    def __post_init__(self) -> None:
        """Auto-populate correlation_id from context if not set."""
        if self.correlation_id is None:
            self.correlation_id = get_correlation_id() or None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result = {
            "event_type": self.event_type.value,
            "timestamp": self.timestamp,
            "details": self.details,
        }
        if self.correlation_id:
            result["correlation_id"] = self.correlation_id
        return result


class NetworkEventLogger:
    """
    Structured logging for network lifecycle events.

    Events are written to a separate logger for easy filtering.
    """

    def __init__(self):
        self._logger = logging.getLogger(f"{__name__}.audit")

    def log(self, event: NetworkEvent) -> None:
        """Log a network event."""
        self._logger.info(f"NETWORK: {event.event_type.value}", extra={"audit": event.to_dict()})


# Global event logger
_events = NetworkEventLogger()


def get_event_logger() -> NetworkEventLogger:
    """Get the global network event logger."""
    return _events


def audit_log(event_type: str, **details: Any) -> None:
    """
    Convenience function for network event logging.

    Args:
        event_type: Type of event (connection_lost, connection_restored,
                    retry_attempt, retry_exhausted, operation_queued, ...)
        **details: Additional details to include in the event
    """
    try:
        event_enum = NetworkEventType(event_type)
    except ValueError:
        event_enum = NetworkEventType.OTHER
        details["original_event_type"] = event_type

    _events.log(NetworkEvent(event_type=event_enum, details=details))
