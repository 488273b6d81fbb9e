"""System logger for operational events.

Writes WARNING and above to stderr by default. Once a log directory is
configured, events go to <log_dir>/x402_policy_logs/system/system.jsonl
instead.
"""

from __future__ import annotations

__all__ = [
    "configure_system_logger",
    "get_system_logger",
    "get_system_log_path",
]

import logging
from pathlib import Path

from x402_policy.constants import LOG_SUBDIR, SYSTEM_LOGGER_NAME
from x402_policy.utils.logging.logger_setup import setup_jsonl_logger, setup_stderr_logger


def get_system_log_path(log_dir: Path) -> Path:
    """Path to system.jsonl under a log directory."""
    return log_dir / LOG_SUBDIR / "system" / "system.jsonl"


def get_system_logger() -> logging.Logger:
    """Return the system logger, attaching a stderr handler on first use."""
    logger = logging.getLogger(SYSTEM_LOGGER_NAME)
    if not logger.handlers:
        setup_stderr_logger(SYSTEM_LOGGER_NAME)
    return logger


def configure_system_logger(log_dir: Path | None, log_level: str = "INFO") -> logging.Logger:
    """Point the system logger at a file (or back at stderr).

    Args:
        log_dir: Base log directory, or None for stderr.
        log_level: Level name ("DEBUG", "INFO", ...).

    Returns:
        The configured system logger.
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO
    if log_dir is None:
        return setup_stderr_logger(SYSTEM_LOGGER_NAME, level)
    return setup_jsonl_logger(SYSTEM_LOGGER_NAME, get_system_log_path(log_dir), level)
