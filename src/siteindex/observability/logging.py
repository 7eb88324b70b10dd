"""Log formatting for the site index.

JSON lines outside development, a compact console format in development.
Both include the request id of the HTTP request being served, and the
cache context passed as ``extra`` by the cache layer:

    logger.warning("Cache get failed", extra={"cache_operation": "get",
                                              "cache_key": key})
"""

from __future__ import annotations

import contextvars
import logging
import sys
from datetime import UTC, datetime
from typing import Any

import orjson

request_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("request_id", default="")

# Record attributes set through ``extra`` that are emitted when present
CONTEXT_FIELDS = ("cache_operation", "cache_key", "coalesce_key", "item_id")

_LEVEL_COLORS = {
    "DEBUG": "\033[36m",
    "INFO": "\033[32m",
    "WARNING": "\033[33m",
    "ERROR": "\033[31m",
    "CRITICAL": "\033[35m",
}

_QUIET_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "httpx": logging.WARNING,
}


def _context(record: logging.LogRecord) -> dict[str, Any]:
    context = {name: getattr(record, name) for name in CONTEXT_FIELDS if hasattr(record, name)}
    request_id = request_id_var.get()
    if request_id:
        context["request_id"] = request_id
    return context


class JsonFormatter(logging.Formatter):
    """One JSON object per record.

    {"timestamp": "...", "level": "WARNING", "logger": "siteindex.cache.errors",
     "message": "...", "cache_operation": "get", "cache_key": "cache:count:total_items"}
    """

    def format(self, record: logging.LogRecord) -> str:
        data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        data.update(_context(record))
        if record.exc_info and record.exc_info[0] is not None:
            data["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info),
            }
        return orjson.dumps(data, default=str).decode()


class ConsoleFormatter(logging.Formatter):
    """``12:34:56 WARNING siteindex.cache.errors: message [cache_key=...]``"""

    def __init__(self, use_colors: bool = True) -> None:
        super().__init__()
        self.use_colors = use_colors and sys.stderr.isatty()

    def format(self, record: logging.LogRecord) -> str:
        level = record.levelname
        if self.use_colors:
            level = f"{_LEVEL_COLORS.get(level, '')}{level}\033[0m"

        timestamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        line = f"{timestamp} {level} {record.name}: {record.getMessage()}"
        context = _context(record)
        if "request_id" in context:
            context["request_id"] = context["request_id"][:8]
        if context:
            line += " [" + " ".join(f"{k}={v}" for k, v in context.items()) + "]"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(json_format: bool = True, level: str = "INFO", use_colors: bool = True) -> None:
    """Install a single stderr handler on the root logger."""
    root = logging.getLogger()
    root.setLevel(level.upper())
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonFormatter() if json_format else ConsoleFormatter(use_colors=use_colors))
    root.addHandler(handler)

    for name, quiet_level in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet_level)
