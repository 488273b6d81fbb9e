"""Logging setup helpers (JSON Lines)."""

from x402_policy.utils.logging.logger_setup import (
    JsonLinesFormatter,
    setup_jsonl_logger,
    setup_stderr_logger,
)

__all__ = [
    "JsonLinesFormatter",
    "setup_jsonl_logger",
    "setup_stderr_logger",
]
