"""ClientConfig dataclass and global configuration state.

This module defines the ``ClientConfig`` class (field declarations and
logging setup) and the global ``get_config`` / ``set_config`` helpers.
Loading and validation logic lives in the ``_ClientConfigLoader`` mixin
(``loader.py``) which ``ClientConfig`` inherits from.
"""

import json
import logging
from dataclasses import dataclass, field
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as get_package_version
from typing import Optional

from netkeeper.config.domains import HeartbeatConfig, QueueConfig, RetryConfig
from netkeeper.config.loader import _ClientConfigLoader


def _get_version() -> str:
    """Get package version from metadata (single source of truth: pyproject.toml)."""
    try:
        return get_package_version("netkeeper")
    except PackageNotFoundError:
        return "0.1.0"  # Fallback for dev without install


_PACKAGE_VERSION = _get_version()


class _JsonFormatter(logging.Formatter):
    """One JSON object per line; audit payloads are embedded when present."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        audit = getattr(record, "audit", None)
        if audit is not None:
            entry["audit"] = audit
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


@dataclass
class ClientConfig(_ClientConfigLoader):
    """Client configuration with support for env vars and TOML overrides."""

    base_url: str = ""

    # Logging configuration
    log_level: str = "INFO"
    structured_logging: bool = False

    heartbeat: HeartbeatConfig = field(default_factory=HeartbeatConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    queue: QueueConfig = field(default_factory=QueueConfig)

    version: str = _PACKAGE_VERSION

    def setup_logging(self) -> None:
        """Configure the ``netkeeper`` logger based on settings."""
        level = getattr(logging, self.log_level, logging.INFO)

        if self.structured_logging:
            formatter: logging.Formatter = _JsonFormatter()
        else:
            formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

        handler = logging.StreamHandler()
        handler.setFormatter(formatter)

        root_logger = logging.getLogger("netkeeper")
        root_logger.setLevel(level)
        for existing in list(root_logger.handlers):
            if getattr(existing, "_netkeeper_handler", False):
                root_logger.removeHandler(existing)
        handler._netkeeper_handler = True  # type: ignore[attr-defined]
        root_logger.addHandler(handler)


# Global configuration instance
_config: Optional[ClientConfig] = None


def get_config() -> ClientConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = ClientConfig.from_env()
    return _config


def set_config(config: Optional[ClientConfig]) -> None:
    """Set the global configuration instance (None resets to lazy loading)."""
    global _config
    _config = config
