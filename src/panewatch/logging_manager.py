"""Logging setup for panewatch.

Console output is human readable. The log file is JSON lines and carries any
``extra={...}`` fields passed to a log call. Control actions (keys sent to
agents) are also written to a separate audit file.
"""

import json
import logging
import logging.handlers
from datetime import datetime
from pathlib import Path
from typing import Any

ROOT_LOGGER = "panewatch"
AUDIT_LOGGER = "panewatch.audit"

_STANDARD_ATTRS = frozenset(
    [
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "message",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "thread",
        "threadName",
        "exc_info",
        "exc_text",
        "stack_info",
        "asctime",
        "taskName",
    ]
)


def record_extras(record: logging.LogRecord) -> dict[str, Any]:
    """Collect the ``extra`` fields of a record as JSON-safe values."""
    extras = {}
    for key, value in record.__dict__.items():
        if key in _STANDARD_ATTRS:
            continue
        try:
            json.dumps(value)
            extras[key] = value
        except (TypeError, ValueError):
            extras[key] = str(value)
    return extras


class JsonLineFormatter(logging.Formatter):
    """One JSON object per record, including extra fields."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        entry.update(record_extras(record))
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


class LoggingManager:
    """Configures the ``panewatch`` logger tree.

    Args:
        log_dir: Directory for ``panewatch.log`` and ``audit.jsonl``.
        log_level: Level for the console handler and the logger itself.
        console: Whether to attach the stderr handler.
    """

    def __init__(self, log_dir: str | Path, log_level: str = "INFO", console: bool = True):
        self.log_dir = Path(log_dir).expanduser()
        self.log_level = getattr(logging, log_level.upper())
        self.log_dir.mkdir(parents=True, exist_ok=True)

        self.console_handler: logging.Handler | None = None
        self.logger = self._setup_logger(console)
        self.audit_logger = self._setup_audit_logger()

    def _setup_logger(self, console: bool) -> logging.Logger:
        logger = logging.getLogger(ROOT_LOGGER)
        logger.setLevel(min(self.log_level, logging.DEBUG))
        logger.propagate = False
        logger.handlers.clear()

        if console:
            self.console_handler = logging.StreamHandler()
            self.console_handler.setLevel(self.log_level)
            self.console_handler.setFormatter(
                logging.Formatter(
                    "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                    datefmt="%Y-%m-%d %H:%M:%S",
                )
            )
            logger.addHandler(self.console_handler)

        file_handler = logging.handlers.RotatingFileHandler(
            self.log_dir / "panewatch.log",
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(JsonLineFormatter())
        logger.addHandler(file_handler)

        # Module loggers created before setup would otherwise keep stale handlers
        for name in list(logging.Logger.manager.loggerDict):
            if name.startswith(ROOT_LOGGER + "."):
                child = logging.getLogger(name)
                child.handlers.clear()
                child.propagate = True

        return logger

    def _setup_audit_logger(self) -> logging.Logger:
        logger = logging.getLogger(AUDIT_LOGGER)
        logger.setLevel(logging.INFO)
        logger.propagate = False
        logger.handlers.clear()

        handler = logging.handlers.RotatingFileHandler(
            self.log_dir / "audit.jsonl",
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
        handler.setFormatter(JsonLineFormatter())
        logger.addHandler(handler)
        return logger

    def set_console_enabled(self, enabled: bool) -> None:
        """Mute or restore console logging, e.g. while a live display owns the terminal."""
        if self.console_handler is None:
            return
        if enabled and self.console_handler not in self.logger.handlers:
            self.logger.addHandler(self.console_handler)
        elif not enabled:
            self.logger.removeHandler(self.console_handler)

    def close(self) -> None:
        for logger in (self.logger, self.audit_logger):
            for handler in list(logger.handlers):
                handler.close()
                logger.removeHandler(handler)


def audit(action: str, **fields: Any) -> None:
    """Record a control action in the audit log."""
    logging.getLogger(AUDIT_LOGGER).info(action, extra=fields)
