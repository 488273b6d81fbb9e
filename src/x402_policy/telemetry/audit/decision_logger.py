"""Decision logging for policy enforcement.

Logs every decision made by the PEP to
<log_dir>/x402_policy_logs/audit/decisions.jsonl.

Decision logs are always at INFO and not controlled by log_level. A failure
to write an audit line is reported to the system logger (see
SystemReportingFileHandler) and never changes the decision.
"""

from __future__ import annotations

__all__ = [
    "DecisionLogger",
    "SystemReportingFileHandler",
    "create_decision_logger",
    "get_decision_log_path",
]

import logging
import sys
from pathlib import Path

from x402_policy.constants import DECISION_LOGGER_NAME, LOG_SUBDIR
from x402_policy.context import RequestContext
from x402_policy.pdp.decision import Decision, RateLimited
from x402_policy.telemetry.models.decision import DecisionEvent
from x402_policy.telemetry.system.system_logger import get_system_logger
from x402_policy.utils.logging.logger_setup import setup_jsonl_logger


class SystemReportingFileHandler(logging.FileHandler):
    """FileHandler that reports failed writes to the system logger.

    logging.Handler.emit() never raises; it calls handleError(), which by
    default prints a traceback to stderr. This override turns the failure
    into a ``decision_log_failed`` system event instead.
    """

    def handleError(self, record: logging.LogRecord) -> None:
        error = sys.exc_info()[1]
        get_system_logger().error(
            {
                "event": "decision_log_failed",
                "log_path": self.baseFilename,
                "error_type": type(error).__name__,
                "error_message": str(error),
            }
        )


def get_decision_log_path(log_dir: Path) -> Path:
    """Path to decisions.jsonl under a log directory."""
    return log_dir / LOG_SUBDIR / "audit" / "decisions.jsonl"


def create_decision_logger(log_path: Path) -> "DecisionLogger":
    """Create a DecisionLogger writing to ``log_path``.

    Args:
        log_path: Path to decisions.jsonl file.

    Returns:
        DecisionLogger wrapping a configured JSONL logger.
    """
    return DecisionLogger(
        setup_jsonl_logger(
            DECISION_LOGGER_NAME,
            log_path,
            log_level=logging.INFO,
            handler_class=SystemReportingFileHandler,
        )
    )


class DecisionLogger:
    """Audit logger for policy decisions.

    Usage:
        logger = create_decision_logger(get_decision_log_path(log_dir))
        logger.log_decision(request, decision, policy_checksum=..., eval_ms=0.4)
    """

    def __init__(self, logger: logging.Logger) -> None:
        self._logger = logger

    def log_decision(
        self,
        request: RequestContext,
        decision: Decision,
        *,
        policy_checksum: str,
        eval_ms: float,
        method: str | None = None,
    ) -> None:
        """Log one decision. Write failures go to the system log, never to the caller."""
        event = DecisionEvent(
            decision=decision.kind.value,
            reason=getattr(decision, "reason", None),
            rule_id=decision.rule_id,
            retry_after=decision.retry_after_seconds if isinstance(decision, RateLimited) else None,
            subject_key=request.subject_key,
            amount=request.estimated_cost,
            timestamp=request.timestamp,
            path=request.path,
            method=method,
            policy_checksum=policy_checksum,
            policy_eval_ms=round(eval_ms, 3),
        )
        self._logger.info(event.model_dump(mode="json", exclude={"time"}, exclude_none=True))
