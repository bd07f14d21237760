"""Centralized logging configuration for scenecast.

Every record is rendered as one JSON object. Render identifiers bound with
:func:`log_context` (job, scene, format) are attached to each record emitted
inside the block, including records from worker threads that bind their own
context.
"""

from __future__ import annotations

import contextlib
import contextvars
import json
import logging
import os
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Dict, FrozenSet, Iterator, Optional

LOG_FILE_ENV = "SCENECAST_LOG_FILE"
LOG_LEVEL_ENV = "SCENECAST_LOG_LEVEL"
DEFAULT_LOG_LEVEL = logging.INFO
LOGGER_NAME = "scenecast"

_logger: Optional[logging.Logger] = None
_log_context: contextvars.ContextVar[Dict[str, object]] = contextvars.ContextVar(
    "scenecast_log_context", default={}
)

_RESERVED_ATTRIBUTES: FrozenSet[str] = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", (), None).__dict__
) | {"message", "asctime", "taskName"}


class JSONLogFormatter(logging.Formatter):
    """Render log records as structured JSON strings."""

    DEFAULT_FIELDS: tuple[str, ...] = (
        "job_id",
        "scene_index",
        "format",
        "event",
        "stage",
        "status",
    )

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        payload: Dict[str, object] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "thread": record.threadName,
        }
        for attr in self.DEFAULT_FIELDS:
            value = getattr(record, attr, None)
            if value is not None:
                payload[attr] = value

        extra = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RESERVED_ATTRIBUTES and key not in self.DEFAULT_FIELDS
        }
        if extra:
            payload["extra"] = extra
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


class LogContextFilter(logging.Filter):
    """Copy the bound render identifiers onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: D401
        for key, value in _log_context.get().items():
            setattr(record, key, value)
        return True


def _level_from_environment() -> int:
    raw = os.environ.get(LOG_LEVEL_ENV, "").strip().upper()
    level = logging.getLevelName(raw) if raw else DEFAULT_LOG_LEVEL
    return level if isinstance(level, int) else DEFAULT_LOG_LEVEL


def _build_handlers() -> list[logging.Handler]:
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    log_file = os.environ.get(LOG_FILE_ENV)
    if log_file:
        path = Path(log_file).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(RotatingFileHandler(path, maxBytes=5 * 1024 * 1024, backupCount=5))
    formatter = JSONLogFormatter()
    for handler in handlers:
        handler.setFormatter(formatter)
    return handlers


def setup_logging(log_level: Optional[int] = None) -> logging.Logger:
    """Configure the package logger once; later calls only adjust the level."""

    global _logger
    if _logger is None:
        logger = logging.getLogger(LOGGER_NAME)
        logger.propagate = False
        logger.addFilter(LogContextFilter())
        for handler in _build_handlers():
            logger.addHandler(handler)
        _logger = logger
    configure_logging_level(log_level=log_level if log_level is not None else _level_from_environment())
    return _logger


def get_logger() -> logging.Logger:
    """Return the configured logger instance, initializing if necessary."""

    return _logger if _logger is not None else setup_logging()


def configure_logging_level(debug_enabled: bool = False, log_level: Optional[int] = None) -> int:
    """Set the logger and handler level from an explicit level or the debug flag."""

    logger = get_logger()
    level = log_level if log_level is not None else (logging.DEBUG if debug_enabled else DEFAULT_LOG_LEVEL)
    logger.setLevel(level)
    for handler in logger.handlers:
        handler.setLevel(level)
    return level


def get_log_context() -> Dict[str, object]:
    """Return a copy of the bound logging context."""

    return dict(_log_context.get())


def push_log_context(**values: object) -> contextvars.Token[Dict[str, object]]:
    """Merge non-``None`` ``values`` into the logging context and return a reset token."""

    merged = dict(_log_context.get())
    merged.update({key: value for key, value in values.items() if value is not None})
    return _log_context.set(merged)


def pop_log_context(token: contextvars.Token[Dict[str, object]]) -> None:
    _log_context.reset(token)


@contextlib.contextmanager
def log_context(**values: object) -> Iterator[None]:
    """Bind ``values`` to every record logged inside the block."""

    token = push_log_context(**values)
    try:
        yield
    finally:
        pop_log_context(token)


def clear_log_context() -> None:
    _log_context.set({})


logger = get_logger()
