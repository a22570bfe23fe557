"""Application configuration for panewatch.

Settings come from code defaults, then a YAML file, then ``--set key=value``
overrides. The file location defaults to ``~/.config/panewatch/config.yaml``
and can be changed with the PANEWATCH_CONFIG environment variable.
"""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from panewatch.errors import ConfigurationError

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "PANEWATCH_CONFIG"
LOG_LEVEL_ENV_VAR = "PANEWATCH_LOG_LEVEL"

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
_TRUE = ("1", "true", "yes", "on")
_FALSE = ("0", "false", "no", "off")


def default_config_path() -> Path:
    return Path(os.environ.get(CONFIG_ENV_VAR, "~/.config/panewatch/config.yaml")).expanduser()


@dataclass
class MonitorConfig:
    """Configuration for the monitor loop and the command line.

    Attributes:
        poll_interval_seconds: Target time between tick starts (default: 0.5).
        capture_lines: Scrollback lines captured per pane (default: 100).
        capture_buffer_chars: Only this many trailing characters of a capture
            are classified (default: 16384).
        show_detached_sessions: Include sessions with no attached client.
        ignore_sessions: Session names to skip: exact names, globs with ``*``
            or ``?``, or ``/regex/``.
        ignore_self: Skip the session panewatch itself runs in.
        hysteresis_seconds: How long an agent that just went quiet keeps
            reading as working (default: 2.0).
        channel_capacity: Trees buffered between monitor and consumer.
        backpressure: "drop" to discard a tree when the channel is full,
            "block" to wait up to publish_timeout_seconds first.
        publish_timeout_seconds: Publish wait bound in "block" mode.
        match_timeout_seconds: Time budget for capturing and classifying one
            pane (default: 2.0).
        max_workers: Worker threads for tmux, psutil and regex work.
        selection_fallback: "clear" or "nearest" when a selected agent vanishes.
        profiles_path: Optional user profile file merged over the defaults.
        log_dir: Directory for the rotating log file.
        log_level: Root level for the panewatch logger.
    """

    poll_interval_seconds: float = 0.5
    capture_lines: int = 100
    capture_buffer_chars: int = 16384
    show_detached_sessions: bool = True
    ignore_sessions: list[str] = field(default_factory=list)
    ignore_self: bool = True
    hysteresis_seconds: float = 2.0
    channel_capacity: int = 1
    backpressure: str = "drop"
    publish_timeout_seconds: float = 0.25
    match_timeout_seconds: float = 2.0
    max_workers: int = 8
    selection_fallback: str = "clear"
    profiles_path: str | None = None
    log_dir: str = "~/.local/state/panewatch"
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if self.poll_interval_seconds <= 0:
            raise ConfigurationError("poll_interval_seconds must be positive")
        if self.capture_lines < 1 or self.capture_buffer_chars < 1:
            raise ConfigurationError("capture_lines and capture_buffer_chars must be at least 1")
        if self.channel_capacity < 1:
            raise ConfigurationError("channel_capacity must be at least 1")
        if self.max_workers < 1:
            raise ConfigurationError("max_workers must be at least 1")
        if self.hysteresis_seconds < 0 or self.publish_timeout_seconds < 0 or self.match_timeout_seconds <= 0:
            raise ConfigurationError("timeouts must not be negative")
        if self.backpressure not in ("drop", "block"):
            raise ConfigurationError(f"backpressure must be 'drop' or 'block', got {self.backpressure!r}")
        if self.selection_fallback not in ("clear", "nearest"):
            raise ConfigurationError(
                f"selection_fallback must be 'clear' or 'nearest', got {self.selection_fallback!r}"
            )
        self.log_level = self.log_level.upper()
        if self.log_level not in _LOG_LEVELS:
            raise ConfigurationError(f"log_level must be one of {', '.join(_LOG_LEVELS)}")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MonitorConfig:
        """Build a config from a mapping, rejecting unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys: {', '.join(unknown)}")
        return cls(**{key: _coerce(key, value) for key, value in data.items()})

    def with_overrides(self, overrides: list[str]) -> MonitorConfig:
        """Return a copy with ``key=value`` overrides applied."""
        data = asdict(self)
        for item in overrides:
            key, sep, value = item.partition("=")
            key = key.strip()
            if not sep or not key:
                raise ConfigurationError(f"Override {item!r} is not of the form key=value")
            data[key] = value.strip()
        return MonitorConfig.from_dict(data)

    @property
    def log_path(self) -> Path:
        return Path(self.log_dir).expanduser()

    @property
    def user_profiles_path(self) -> Path | None:
        return Path(self.profiles_path).expanduser() if self.profiles_path else None


_DEFAULTS = {f.name: f for f in fields(MonitorConfig)}


def _coerce(key: str, value: Any) -> Any:
    """Convert ``value`` to the type of the ``key`` field's default."""
    spec = _DEFAULTS[key]
    default = spec.default_factory() if callable(spec.default_factory) else spec.default

    if key == "profiles_path":
        if value is None or (isinstance(value, str) and value.strip().lower() in ("", "none", "null")):
            return None
        return str(value)

    if isinstance(default, bool):
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in _TRUE + _FALSE:
            return value.strip().lower() in _TRUE
    elif isinstance(default, int):
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str):
            try:
                return int(value)
            except ValueError:
                pass
    elif isinstance(default, float):
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
        if isinstance(value, str):
            try:
                return float(value)
            except ValueError:
                pass
    elif isinstance(default, list):
        if isinstance(value, list) and all(isinstance(v, str) for v in value):
            return value
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
    elif isinstance(value, str):
        return value

    raise ConfigurationError(f"Invalid value for {key}: {value!r}")


def load_config(path: Path | None = None, overrides: list[str] | None = None) -> MonitorConfig:
    """Load configuration from YAML, then apply overrides.

    A missing file at the default location is not an error; a missing file
    that was asked for explicitly is.

    Raises:
        ConfigurationError: If the file is unreadable, malformed or contains
            unknown keys or invalid values.
    """
    explicit = path is not None or CONFIG_ENV_VAR in os.environ
    config_path = Path(path).expanduser() if path is not None else default_config_path()

    data: dict[str, Any] = {}
    if config_path.exists():
        try:
            with open(config_path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Failed to parse configuration {config_path}: {e}") from e
        except OSError as e:
            raise ConfigurationError(f"Cannot read configuration {config_path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"{config_path}: expected a mapping at the top level")
        logger.debug(f"Loaded configuration from {config_path}")
    elif explicit:
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    if LOG_LEVEL_ENV_VAR in os.environ:
        data["log_level"] = os.environ[LOG_LEVEL_ENV_VAR]

    config = MonitorConfig.from_dict(data)
    if overrides:
        config = config.with_overrides(overrides)
    return config
