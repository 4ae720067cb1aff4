"""netkeeper: network resilience layer for the retail back-office client.

Public entry points live in :mod:`netkeeper.core.network`; configuration in
:mod:`netkeeper.config`.
"""

from netkeeper.core.network import (
    ConnectivityMonitor,
    OfflineQueue,
    ResilientClient,
    RetryExecutor,
    RetryPolicy,
    classify,
)

__all__ = [
    "ConnectivityMonitor",
    "OfflineQueue",
    "ResilientClient",
    "RetryExecutor",
    "RetryPolicy",
    "classify",
]
