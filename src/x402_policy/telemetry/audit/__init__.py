"""Audit logging for policy decisions."""

from x402_policy.telemetry.audit.decision_logger import (
    DecisionLogger,
    create_decision_logger,
    get_decision_log_path,
)

__all__ = [
    "DecisionLogger",
    "create_decision_logger",
    "get_decision_log_path",
]
