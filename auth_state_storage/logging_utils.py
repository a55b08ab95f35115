"""
Structured JSON logging utilities.

Record stores log through loggers named ``auth_state_storage.<component>``.
Hosts that ship logs to an aggregator can install the JSON formatter with
``configure_structured_logging``; everyone else gets plain stdlib logging.

Record values and encryption secrets are never passed to a logger.
"""

import json
import logging
import sys
from datetime import UTC, datetime
from typing import Any

LOGGER_PREFIX = "auth_state_storage"

_STANDARD_ATTRS = {
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "taskName", "message",
}


def _context_value(value: Any) -> Any:
    """JSON-safe form of an extra field; binary values are reduced to a size."""
    if isinstance(value, (bytes, bytearray, memoryview)):
        return f"<{len(value)} bytes>"
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return str(value)
    return value


class StructuredJsonFormatter(logging.Formatter):
    """
    JSON formatter emitting one object per line.

    Fields:
    - timestamp: record creation time, ISO 8601 in UTC
    - level, logger, message
    - exception: formatted traceback, when present
    - Context fields from the extra dict (backend, location, key)

    Binary context values are logged as their size only.
    """

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, UTC)
        log_obj: dict[str, Any] = {
            "timestamp": created.isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        log_obj.update(
            (key, _context_value(value))
            for key, value in vars(record).items()
            if key not in _STANDARD_ATTRS and not key.startswith("_")
        )
        return json.dumps(log_obj, default=str)


def configure_structured_logging(
    level: int = logging.INFO,
    logger_name: str | None = LOGGER_PREFIX,
    stream: Any = None,
) -> logging.Logger:
    """
    Install the JSON formatter on a logger.

    Args:
        level: Logging level (default: INFO)
        logger_name: Logger to configure (default: the package logger; None for root)
        stream: Output stream (default: stdout)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(logger_name)
    logger.handlers.clear()

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(StructuredJsonFormatter())

    logger.addHandler(handler)
    logger.setLevel(level)

    return logger


def get_storage_logger(name: str) -> logging.Logger:
    """
    Get a logger for a storage component.

    Args:
        name: Component name (e.g., 'files', 'sqlite', 'cosmos')

    Returns:
        Logger named 'auth_state_storage.{name}'
    """
    return logging.getLogger(f"{LOGGER_PREFIX}.{name}")


class StorageLoggerAdapter(logging.LoggerAdapter):
    """Adds store context (backend, location) to every log record."""

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        extra = dict(kwargs.get("extra") or {})
        extra.update(self.extra)
        kwargs["extra"] = extra
        return msg, kwargs
