"""Centralized logging configuration for archsim.

Usage:
    from archsim.core.logging_config import configure_logging

    # Configure once at process startup (CLI, HTTP server)
    configure_logging(level="DEBUG")

Library modules never configure logging themselves; they use
``logging.getLogger(__name__)``.

Environment Variables:
    ARCHSIM_LOG_LEVEL: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    ARCHSIM_LOG_FORMAT: Output format ("text" or "json")
    ARCHSIM_LOG_FILE: Optional log file path
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime
from typing import Any, Literal

TEXT_FORMAT = "%(asctime)s.%(msecs)03d - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Attributes present on every LogRecord; anything else came in via `extra=`.
_STANDARD_ATTRS = frozenset(
    {
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
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "exc_info",
        "exc_text",
        "thread",
        "threadName",
        "taskName",
        "message",
    }
)

_configured = False


class JsonFormatter(logging.Formatter):
    """JSON log formatter for structured logging.

    Outputs one object per line:
    {
        "timestamp": "2026-01-12T14:30:00.123",
        "level": "INFO",
        "logger": "archsim.server.engine",
        "message": "graph_deployed: nodes=4",
        "extra": {...}
    }
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        extra = {k: v for k, v in record.__dict__.items() if k not in _STANDARD_ATTRS}
        if extra:
            log_data["extra"] = extra

        return json.dumps(log_data, default=str)


def configure_logging(
    level: str | None = None,
    format: Literal["text", "json"] | None = None,
    file_path: str | None = None,
    force: bool = False,
) -> None:
    """Configure root logging for the process.

    Subsequent calls are ignored unless force=True. Arguments fall back to
    the ARCHSIM_LOG_* environment variables, then to INFO/text/no file.

    Args:
        level: Log level name.
        format: "text" or "json".
        file_path: Optional file to log to in addition to stderr.
        force: Reconfigure even if already configured.
    """
    global _configured
    if _configured and not force:
        return

    level = level or os.environ.get("ARCHSIM_LOG_LEVEL", "INFO")
    format = format or os.environ.get("ARCHSIM_LOG_FORMAT", "text")  # type: ignore[assignment]
    file_path = file_path or os.environ.get("ARCHSIM_LOG_FILE")

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    root_logger.handlers.clear()

    if format == "json":
        formatter: logging.Formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(TEXT_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if file_path:
        file_handler = logging.FileHandler(file_path)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    # aiohttp logs every request at INFO; keep it quiet unless debugging
    if root_logger.level > logging.DEBUG:
        logging.getLogger("aiohttp.access").setLevel(logging.WARNING)

    _configured = True
