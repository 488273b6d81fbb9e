"""Logger construction for JSON Lines logs.

Loggers in this package take dict messages:

    logger.info({"event": "policy_reloaded", "new_rules_count": 3})

JsonLinesFormatter serialises the dict as one JSON object per line and adds
an ISO 8601 ``time`` field. Plain string messages are wrapped as
``{"message": ...}``.
"""

from __future__ import annotations

__all__ = [
    "JsonLinesFormatter",
    "setup_jsonl_logger",
    "setup_stderr_logger",
]

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any


class JsonLinesFormatter(logging.Formatter):
    """Format dict log messages as single-line JSON."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "time": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(timespec="milliseconds")
        }
        if isinstance(record.msg, dict):
            payload.setdefault("level", record.levelname)
            payload.update(record.msg)
        else:
            payload["level"] = record.levelname
            payload["message"] = record.getMessage()
        if record.exc_info:
            payload["stacktrace"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str, ensure_ascii=False)


def _reset_handlers(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


def setup_jsonl_logger(
    name: str,
    log_path: Path,
    log_level: int = logging.INFO,
    handler_class: type[logging.FileHandler] = logging.FileHandler,
) -> logging.Logger:
    """Create (or reconfigure) a logger writing JSON Lines to a file.

    Creates parent directories. Calling again with the same name replaces
    the previous handler, so reconfiguration never duplicates lines.

    Args:
        name: Logger name.
        log_path: Target .jsonl file.
        log_level: Minimum level.
        handler_class: FileHandler subclass, e.g. one that reports write
            errors somewhere other than stderr.

    Returns:
        Configured logger (propagation disabled).
    """
    log_path.parent.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(name)
    _reset_handlers(logger)
    handler = handler_class(log_path, encoding="utf-8")
    handler.setFormatter(JsonLinesFormatter())
    logger.addHandler(handler)
    logger.setLevel(log_level)
    logger.propagate = False
    return logger


def setup_stderr_logger(name: str, log_level: int = logging.WARNING) -> logging.Logger:
    """Create (or reconfigure) a logger writing JSON Lines to stderr."""
    logger = logging.getLogger(name)
    _reset_handlers(logger)
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonLinesFormatter())
    logger.addHandler(handler)
    logger.setLevel(log_level)
    logger.propagate = False
    return logger
