"""Latency tracking and connection quality grading."""

from collections import deque
from typing import Deque, List, Optional

DEFAULT_LATENCY_WINDOW = 10

# Upper bounds in milliseconds, checked in order
QUALITY_THRESHOLDS = (
    (100.0, "excellent"),
    (300.0, "good"),
    (1000.0, "fair"),
)


class LatencyWindow:
    """Rolling window of the most recent heartbeat latencies (milliseconds)."""

    def __init__(self, size: int = DEFAULT_LATENCY_WINDOW):
        if size < 1:
            raise ValueError("size must be >= 1")
        self._samples: Deque[float] = deque(maxlen=size)

    def add(self, latency_ms: float) -> None:
        self._samples.append(max(0.0, float(latency_ms)))

    @property
    def average(self) -> Optional[float]:
        if not self._samples:
            return None
        return sum(self._samples) / len(self._samples)

    def samples(self) -> List[float]:
        return list(self._samples)

    def __len__(self) -> int:
        return len(self._samples)


def grade_connection(online: bool, average_latency_ms: Optional[float]) -> str:
    """Grade connection quality from the online flag and average latency.

    Returns one of ``offline``, ``unknown`` (online but no samples yet),
    ``excellent``, ``good``, ``fair`` or ``poor``.
    """
    if not online:
        return "offline"
    if average_latency_ms is None:
        return "unknown"
    for upper, label in QUALITY_THRESHOLDS:
        if average_latency_ms < upper:
            return label
    return "poor"
