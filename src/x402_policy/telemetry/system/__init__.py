"""System (operational) logging."""

from x402_policy.telemetry.system.system_logger import configure_system_logger, get_system_logger

__all__ = [
    "configure_system_logger",
    "get_system_logger",
]
