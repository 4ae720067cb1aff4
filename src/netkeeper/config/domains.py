"""Domain-specific configuration dataclasses.

Contains small, focused configuration classes for the heartbeat, retry and
offline queue domains.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from netkeeper.config.parsing import _parse_list, _parse_optional_float, _parse_optional_int


@dataclass
class HeartbeatConfig:
    """Configuration for the connectivity monitor heartbeat.

    Attributes:
        interval: Seconds between heartbeats while online
        timeout: Upper bound for one heartbeat (seconds)
        offline_base_delay: First re-check delay while offline (seconds)
        offline_max_delay: Cap for the offline re-check backoff (seconds)
        endpoints: Ordered endpoint fallback list (derived from base_url when empty)
        method: HTTP method used for probing
    """

    interval: float = 30.0
    timeout: float = 5.0
    offline_base_delay: float = 5.0
    offline_max_delay: float = 60.0
    endpoints: List[str] = field(default_factory=list)
    method: str = "HEAD"

    def resolve_endpoints(self, base_url: str) -> List[str]:
        """Explicit endpoints, or the base URL's static asset and root."""
        if self.endpoints:
            return list(self.endpoints)
        if not base_url:
            return []
        base = base_url.rstrip("/")
        return [f"{base}/favicon.ico", f"{base}/"]

    @classmethod
    def from_toml_dict(cls, data: Dict[str, Any]) -> "HeartbeatConfig":
        """Create config from TOML dict (typically [heartbeat] section).

        Args:
            data: Dict from TOML parsing

        Returns:
            HeartbeatConfig instance
        """
        return cls(
            interval=float(data.get("interval", 30.0)),
            timeout=float(data.get("timeout", 5.0)),
            offline_base_delay=float(data.get("offline_base_delay", 5.0)),
            offline_max_delay=float(data.get("offline_max_delay", 60.0)),
            endpoints=_parse_list(data.get("endpoints", [])),
            method=str(data.get("method", "HEAD")).upper(),
        )


@dataclass
class RetryConfig:
    """Configuration for the retry executor's default policy.

    Attributes:
        max_attempts: Total attempts including the first
        base_delay: Backoff base (seconds)
        max_delay: Backoff cap (seconds)
        jitter: Upper bound of the random delay multiplier
        attempt_timeout: Per-attempt timeout in seconds (None = unbounded)
    """

    max_attempts: int = 3
    base_delay: float = 0.5
    max_delay: float = 10.0
    jitter: float = 0.3
    attempt_timeout: Optional[float] = 10.0

    @classmethod
    def from_toml_dict(cls, data: Dict[str, Any]) -> "RetryConfig":
        """Create config from TOML dict (typically [retry] section)."""
        return cls(
            max_attempts=int(data.get("max_attempts", 3)),
            base_delay=float(data.get("base_delay", 0.5)),
            max_delay=float(data.get("max_delay", 10.0)),
            jitter=float(data.get("jitter", 0.3)),
            attempt_timeout=_parse_optional_float(data.get("attempt_timeout", 10.0)),
        )


@dataclass
class QueueConfig:
    """Configuration for the offline queue.

    Attributes:
        max_items: Queue capacity
        storage_path: JSON file backing the queue (None = in-memory)
        max_replay_attempts: Drop an operation after this many failed replays
            (None = unlimited)
    """

    max_items: int = 100
    storage_path: Optional[str] = None
    max_replay_attempts: Optional[int] = None

    @classmethod
    def from_toml_dict(cls, data: Dict[str, Any]) -> "QueueConfig":
        """Create config from TOML dict (typically [queue] section)."""
        storage_path = data.get("storage_path")
        return cls(
            max_items=int(data.get("max_items", 100)),
            storage_path=str(storage_path) if storage_path else None,
            max_replay_attempts=_parse_optional_int(data.get("max_replay_attempts")),
        )
