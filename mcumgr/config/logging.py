"""Logging helpers for the mcumgr client."""

from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from logging.config import dictConfig
from typing import Any

import msgspec

from .settings import ClientConfig

LOG_FORMAT_ENV = "MCUMGR_LOG_FORMAT"

_RESERVED_LOG_KEYS = {
    "args",
    "asctime",
    "created",
    "exc_info",
    "exc_text",
    "filename",
    "funcName",
    "levelname",
    "levelno",
    "lineno",
    "module",
    "msecs",
    "message",
    "msg",
    "name",
    "pathname",
    "process",
    "processName",
    "relativeCreated",
    "stack_info",
    "taskName",
    "thread",
    "threadName",
}


def _serialise_value(value: Any) -> Any:
    """Serialise values for JSON logs with strict type handling."""
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, (bytes, bytearray, memoryview)):
        # Binary payloads are rendered as uppercase hex: [DE AD BE EF]
        return f"[{' '.join(f'{b:02X}' for b in bytes(value))}]"
    return str(value)


class StructuredLogFormatter(logging.Formatter):
    """Emit JSON per log line while trimming the shared prefix."""

    PREFIX = "mcumgr."

    def format(self, record: logging.LogRecord) -> str:
        logger_name = record.name
        if logger_name.startswith(self.PREFIX):
            logger_name = logger_name[len(self.PREFIX) :]

        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": logger_name,
            "message": record.getMessage(),
        }

        extras = {
            key: _serialise_value(value)
            for key, value in record.__dict__.items()
            if key not in _RESERVED_LOG_KEYS and not key.startswith("_")
        }
        if extras:
            payload["extra"] = extras

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return msgspec.json.encode(payload).decode("utf-8")


def configure_logging(config: ClientConfig) -> None:
    """Configure root logging based on client settings.

    JSON lines are the default; ``MCUMGR_LOG_FORMAT=plain`` switches to the
    stock text formatter for interactive use.
    """

    level_name = "DEBUG" if config.debug_logging else "INFO"
    formatter = "plain" if os.environ.get(LOG_FORMAT_ENV, "").lower() == "plain" else "structured"

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "structured": {
                    "()": "mcumgr.config.logging.StructuredLogFormatter",
                },
                "plain": {
                    "format": "%(asctime)s %(levelname)s %(name)s: %(message)s",
                },
            },
            "handlers": {
                "mcumgr": {
                    "class": "logging.StreamHandler",
                    "level": level_name,
                    "formatter": formatter,
                }
            },
            "root": {
                "level": level_name,
                "handlers": ["mcumgr"],
            },
        }
    )

    logging.getLogger("mcumgr").info("Logging configured at level %s", level_name)
