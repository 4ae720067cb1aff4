"""Configuration package for netkeeper.

Sub-modules:
    parsing    – value parsing helpers
    domains    – HeartbeatConfig, RetryConfig, QueueConfig
    loader     – ClientConfig loading/validation mixin (_ClientConfigLoader)
    client     – ClientConfig dataclass, get_config/set_config globals
"""

from netkeeper.config.client import (  # noqa: F401
    _PACKAGE_VERSION,
    ClientConfig,
    get_config,
    set_config,
)
from netkeeper.config.domains import (  # noqa: F401
    HeartbeatConfig,
    QueueConfig,
    RetryConfig,
)
from netkeeper.config.parsing import _try_parse_bool  # noqa: F401

__all__ = [
    "ClientConfig",
    "HeartbeatConfig",
    "RetryConfig",
    "QueueConfig",
    "get_config",
    "set_config",
]
