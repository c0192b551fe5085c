"""Structured logging configuration for kanbanflow.

Provides two log formats:
- **dev** (default): human-readable, with timestamp/level/module.
- **json**: one JSON object per line for log aggregation.

Usage (at the server or client entry point)::

    from kanbanflow.logging_config import setup_logging
    setup_logging()          # dev format
    setup_logging("json")    # JSON format

Modules obtain their logger via ``logging.getLogger(__name__)``.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path


class JSONFormatter(logging.Formatter):
    """Emit each log record as a single JSON line.

    Fields: timestamp, level, logger, message, plus any *extra* keys
    attached to the record (e.g. ``board_id``, ``op_id``).
    """

    _BUILTIN_ATTRS = frozenset({
        "args", "created", "exc_info", "exc_text", "filename", "funcName",
        "levelname", "levelno", "lineno", "module", "msecs", "message", "msg",
        "name", "pathname", "process", "processName", "relativeCreated",
        "stack_info", "thread", "threadName", "taskName",
    })

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key, value in record.__dict__.items():
            if key not in self._BUILTIN_ATTRS and not key.startswith("_"):
                log_entry[key] = value

        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


DEV_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
DEV_DATEFMT = "%H:%M:%S"


def _resolve_level(level: int | str | None, warn: bool) -> int:
    if level is None:
        level = os.environ.get("LOG_LEVEL", "INFO")
    if isinstance(level, int):
        return level
    resolved = getattr(logging, level.upper(), None)
    if not isinstance(resolved, int):
        if warn:
            print(
                f"WARNING: Invalid LOG_LEVEL '{level}', falling back to INFO",
                file=sys.stderr,
            )
        return logging.INFO
    return resolved


def setup_logging(
    fmt: str | None = None,
    level: int | str | None = None,
) -> None:
    """Configure the root logger.

    Parameters
    ----------
    fmt:
        ``"json"`` or ``"dev"`` (default). Falls back to ``LOG_FORMAT``.
    level:
        Level name or number. Falls back to ``LOG_LEVEL``, then ``INFO``.
    """
    fmt = fmt or os.environ.get("LOG_FORMAT", "dev")
    resolved = _resolve_level(level, warn=True)

    handler = logging.StreamHandler(sys.stderr)
    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(DEV_FORMAT, datefmt=DEV_DATEFMT))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(resolved)

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


KANBANFLOW_LOG = Path.home() / ".kanbanflow" / "kanbanflow.log"


def setup_file_logging(
    log_file: Path | None = None,
    level: int | str | None = None,
) -> None:
    """Add a rotating file handler to the root logger (server process)."""
    log_file = log_file or KANBANFLOW_LOG
    log_file.parent.mkdir(parents=True, exist_ok=True)
    resolved = _resolve_level(level, warn=False)

    handler = RotatingFileHandler(
        log_file, maxBytes=10 * 1024 * 1024, backupCount=3, encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter(DEV_FORMAT, datefmt=DEV_DATEFMT))
    handler.setLevel(resolved)

    root = logging.getLogger()
    root.addHandler(handler)
    root.setLevel(resolved)
