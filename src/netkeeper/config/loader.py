"""ClientConfig loading and validation logic.

Provides ``_ClientConfigLoader``, a mixin class whose methods are inherited by
``ClientConfig`` (defined in ``client.py``). Splitting loading/validation
logic into its own module keeps ``client.py`` focused on field definitions.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Optional, cast

if TYPE_CHECKING:
    from netkeeper.config.client import ClientConfig

try:
    import tomllib
except ImportError:
    import tomli as tomllib  # Python < 3.11 fallback

from netkeeper.config.domains import HeartbeatConfig, QueueConfig, RetryConfig
from netkeeper.config.parsing import _parse_list, _parse_optional_int, _try_parse_bool

logger = logging.getLogger(__name__)

CONFIG_FILE_ENV_VAR = "NETKEEPER_CONFIG_FILE"
PROJECT_CONFIG_NAME = "netkeeper.toml"


class _ClientConfigLoader:
    """Mixin providing config-loading methods for ``ClientConfig``.

    At runtime ``self`` is always a ``ClientConfig`` instance.
    """

    if TYPE_CHECKING:
        base_url: str
        log_level: str
        structured_logging: bool
        heartbeat: HeartbeatConfig
        retry: RetryConfig
        queue: QueueConfig

    @classmethod
    def from_env(cls, config_file: Optional[str] = None) -> "ClientConfig":
        """
        Create configuration from environment variables and optional TOML file.

        Priority (highest to lowest):
        1. Environment variables
        2. Explicit config file (argument or NETKEEPER_CONFIG_FILE)
        3. Project TOML config (./netkeeper.toml)
        4. XDG config (~/.config/netkeeper/config.toml)
        5. Default values
        """
        config = cls()

        toml_path = config_file or os.environ.get(CONFIG_FILE_ENV_VAR)
        if toml_path:
            config._load_toml(Path(toml_path))
        else:
            xdg_config_home = os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config")
            xdg_config = Path(xdg_config_home) / "netkeeper" / "config.toml"
            if xdg_config.exists():
                config._load_toml(xdg_config)
                logger.debug("Loaded XDG config from %s", xdg_config)

            project_config = Path(PROJECT_CONFIG_NAME)
            if project_config.exists():
                config._load_toml(project_config)
                logger.debug("Loaded project config from %s", project_config)

        config._load_env()
        config._validate()

        return cast("ClientConfig", config)

    def _load_toml(self, path: Path) -> None:
        """Load configuration from TOML file."""
        if not path.exists():
            logger.warning("Config file not found: %s", path)
            return

        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            logger.error("Error loading config file %s: %s", path, e)
            return

        if "client" in data:
            client = data["client"]
            if "base_url" in client:
                self.base_url = str(client["base_url"])

        if "logging" in data:
            log = data["logging"]
            if "level" in log:
                self.log_level = str(log["level"]).upper()
            if "structured" in log:
                parsed = _try_parse_bool(log["structured"])
                if parsed is not None:
                    self.structured_logging = parsed

        sections = (
            ("heartbeat", HeartbeatConfig),
            ("retry", RetryConfig),
            ("queue", QueueConfig),
        )
        for name, config_cls in sections:
            if name not in data:
                continue
            try:
                setattr(self, name, config_cls.from_toml_dict(data[name]))
            except (TypeError, ValueError) as e:
                logger.warning("Invalid [%s] section in %s, keeping defaults: %s", name, path, e)

    def _env_override(self, name: str, parse: Callable[[str], Any], apply: Callable[[Any], None]) -> None:
        raw = os.environ.get(name)
        if raw is None or raw == "":
            return
        try:
            apply(parse(raw))
        except (TypeError, ValueError):
            logger.warning("Ignoring invalid value for %s: %r", name, raw)

    def _load_env(self) -> None:
        """Load configuration from environment variables."""
        if base_url := os.environ.get("NETKEEPER_BASE_URL"):
            self.base_url = base_url

        if level := os.environ.get("NETKEEPER_LOG_LEVEL"):
            self.log_level = level.upper()

        if structured := os.environ.get("NETKEEPER_STRUCTURED_LOGGING"):
            parsed = _try_parse_bool(structured)
            if parsed is None:
                logger.warning("Ignoring invalid value for NETKEEPER_STRUCTURED_LOGGING: %r", structured)
            else:
                self.structured_logging = parsed

        # Heartbeat settings
        self._env_override(
            "NETKEEPER_HEARTBEAT_INTERVAL", float, lambda v: setattr(self.heartbeat, "interval", v)
        )
        self._env_override(
            "NETKEEPER_HEARTBEAT_TIMEOUT", float, lambda v: setattr(self.heartbeat, "timeout", v)
        )
        self._env_override(
            "NETKEEPER_HEARTBEAT_ENDPOINTS", _parse_list, lambda v: setattr(self.heartbeat, "endpoints", v)
        )

        # Retry settings
        self._env_override(
            "NETKEEPER_RETRY_MAX_ATTEMPTS", int, lambda v: setattr(self.retry, "max_attempts", v)
        )
        self._env_override(
            "NETKEEPER_RETRY_BASE_DELAY", float, lambda v: setattr(self.retry, "base_delay", v)
        )
        self._env_override(
            "NETKEEPER_RETRY_MAX_DELAY", float, lambda v: setattr(self.retry, "max_delay", v)
        )

        # Queue settings
        if queue_path := os.environ.get("NETKEEPER_QUEUE_PATH"):
            self.queue.storage_path = queue_path
        self._env_override(
            "NETKEEPER_QUEUE_MAX_ITEMS", int, lambda v: setattr(self.queue, "max_items", v)
        )
        self._env_override(
            "NETKEEPER_QUEUE_MAX_REPLAY_ATTEMPTS",
            _parse_optional_int,
            lambda v: setattr(self.queue, "max_replay_attempts", v),
        )

    def _validate(self) -> None:
        """Reset out-of-range values to their defaults, with a warning."""
        defaults_hb = HeartbeatConfig()
        defaults_retry = RetryConfig()
        defaults_queue = QueueConfig()

        checks = (
            (self.heartbeat, "interval", lambda v: v > 0, defaults_hb.interval),
            (self.heartbeat, "timeout", lambda v: v > 0, defaults_hb.timeout),
            (self.heartbeat, "offline_base_delay", lambda v: v > 0, defaults_hb.offline_base_delay),
            (self.heartbeat, "offline_max_delay", lambda v: v > 0, defaults_hb.offline_max_delay),
            (self.retry, "max_attempts", lambda v: v >= 1, defaults_retry.max_attempts),
            (self.retry, "base_delay", lambda v: v >= 0, defaults_retry.base_delay),
            (self.retry, "max_delay", lambda v: v >= 0, defaults_retry.max_delay),
            (self.retry, "jitter", lambda v: v >= 0, defaults_retry.jitter),
            (self.queue, "max_items", lambda v: v >= 1, defaults_queue.max_items),
        )
        for section, attr, is_valid, default in checks:
            value = getattr(section, attr)
            if not is_valid(value):
                logger.warning("Invalid %s=%r, using default %r", attr, value, default)
                setattr(section, attr, default)

        if self.heartbeat.offline_max_delay < self.heartbeat.offline_base_delay:
            logger.warning("heartbeat.offline_max_delay < offline_base_delay; raising it to match")
            self.heartbeat.offline_max_delay = self.heartbeat.offline_base_delay
