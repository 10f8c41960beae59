"""
Logging setup for keyspread.

Worker threads, the store backends and the CLI all log through the standard
library. Two output modes:

- console: one line per record, tagged with the worker thread and task
- json: one object per record, with every `extra=` field promoted to a key

Usage:
    from keyspread.utils.logging import configure_logging, get_logger

    configure_logging(level="INFO", json_logs=False)
    log = get_logger(__name__)
    log.info("[FLUSH] 1000 records", extra={"task": "InsertBenchmarkBatch", "rows": 1000})
"""

from __future__ import annotations

import json
import logging
import logging.config
from typing import Any, Dict, Optional

# Attributes every LogRecord carries; anything else came in through `extra=`.
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None)).keys()
) | {"message", "asctime", "extra"}

_CONSOLE_FORMAT = (
    "%(asctime)s | %(levelname)-7s | %(threadName)s | %(task)s | %(name)s | %(message)s"
)


def _json_formatter(record: logging.LogRecord) -> str:
    """Render a log record as one JSON object."""
    payload: Dict[str, Any] = {
        "level": record.levelname,
        "logger": record.name,
        "thread": record.threadName,
        "message": record.getMessage(),
    }
    payload.update(
        (key, value) for key, value in vars(record).items() if key not in _RESERVED_ATTRS
    )
    # Older call sites pass a nested dict as extra={"extra": {...}}.
    nested = getattr(record, "extra", None)
    if isinstance(nested, dict):
        payload.update(nested)
    if record.exc_info:
        payload["exc_info"] = logging.Formatter().formatException(record.exc_info)
    if record.stack_info:
        payload["stack_info"] = record.stack_info
    return json.dumps(payload, default=str)


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        return _json_formatter(record)


class TaskFilter(logging.Filter):
    """Give records logged outside a worker a `task` placeholder for the console format."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "task"):
            record.task = "-"
        return True


def _logging_config(level: str, formatter_name: str) -> Dict[str, Any]:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {"task": {"()": TaskFilter}},
        "formatters": {
            "console": {"format": _CONSOLE_FORMAT, "datefmt": "%H:%M:%S"},
            "json": {"()": JsonFormatter},
        },
        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "formatter": formatter_name,
                "filters": ["task"],
                "level": level,
            }
        },
        "root": {"handlers": ["default"], "level": level},
        "loggers": {
            # psycopg_pool is chatty at INFO when workers come and go
            "psycopg.pool": {"level": "WARNING"},
        },
    }


def configure_logging(
    level: str = "INFO",
    json_logs: bool = False,
    force: bool = True,
) -> None:
    """
    Configure root logging.

    Parameters
    ----------
    level : str
        Logging level name (e.g., "DEBUG", "INFO", "WARNING").
    json_logs : bool
        Emit one JSON object per record instead of console lines.
    force : bool
        Replace an existing root configuration. With False, a root logger that
        already has handlers is left alone.
    """
    if not force and logging.getLogger().handlers:
        return
    logging.config.dictConfig(_logging_config(level.upper(), "json" if json_logs else "console"))


def get_logger(name: Optional[str] = None) -> logging.Logger:
    return logging.getLogger(name)


__all__ = ["configure_logging", "get_logger", "JsonFormatter", "TaskFilter"]
