"""Tests for decision audit logging and the JSON Lines formatter.

Tests use the AAA pattern (Arrange-Act-Assert) for clarity.
"""

import json
import logging
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from x402_policy.constants import DECISION_LOGGER_NAME
from x402_policy.context import RequestContext
from x402_policy.pdp import Allow, Deny, RateLimited
from x402_policy.telemetry.audit.decision_logger import (
    create_decision_logger,
    get_decision_log_path,
)
from x402_policy.telemetry.models.decision import DecisionEvent
from x402_policy.telemetry.system.system_logger import configure_system_logger, get_system_log_path
from x402_policy.utils.logging.logger_setup import JsonLinesFormatter, setup_jsonl_logger


def _read_lines(path):
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]


# =============================================================================
# Tests: JsonLinesFormatter
# =============================================================================


class TestJsonLinesFormatter:
    """Tests for JsonLinesFormatter."""

    def _record(self, msg, level=logging.INFO):
        return logging.LogRecord("test", level, __file__, 1, msg, None, None)

    def test_dict_message(self):
        # Act
        line = JsonLinesFormatter().format(self._record({"event": "x", "count": 2}))

        # Assert
        payload = json.loads(line)
        assert payload["event"] == "x"
        assert payload["count"] == 2
        assert payload["level"] == "INFO"
        assert "T" in payload["time"]

    def test_string_message(self):
        payload = json.loads(JsonLinesFormatter().format(self._record("hello", logging.WARNING)))

        assert payload["message"] == "hello"
        assert payload["level"] == "WARNING"

    def test_single_line(self):
        line = JsonLinesFormatter().format(self._record({"event": "multi\nline"}))

        assert "\n" not in line

    def test_reconfigure_does_not_duplicate(self, tmp_path):
        # Arrange
        path = tmp_path / "log.jsonl"
        setup_jsonl_logger("x402-policy.test.dup", path)
        logger = setup_jsonl_logger("x402-policy.test.dup", path)

        # Act
        logger.info({"event": "once"})

        # Assert
        assert len(_read_lines(path)) == 1


# =============================================================================
# Tests: DecisionLogger
# =============================================================================


class TestDecisionLogger:
    """Tests for DecisionLogger."""

    @pytest.fixture
    def log_path(self, tmp_path):
        return get_decision_log_path(tmp_path)

    def test_log_path_layout(self, tmp_path):
        assert get_decision_log_path(tmp_path) == tmp_path / "x402_policy_logs" / "audit" / "decisions.jsonl"

    def test_logs_rate_limited_decision(self, log_path):
        # Arrange
        logger = create_decision_logger(log_path)
        request = RequestContext(agent_id="a", estimated_cost=0.5, timestamp=1000.0, path="/data")

        # Act
        logger.log_decision(
            request, RateLimited(30, "rule_1"), policy_checksum="sha256:abc", eval_ms=0.12345, method="GET"
        )

        # Assert
        (line,) = _read_lines(log_path)
        assert line["event"] == "policy_decision"
        assert line["decision"] == "rate_limited"
        assert line["retry_after"] == 30
        assert line["rule_id"] == "rule_1"
        assert line["subject_key"] == "agent_id:a"
        assert line["amount"] == 0.5
        assert line["policy_eval_ms"] == 0.123

    def test_allow_omits_empty_fields(self, log_path):
        # Arrange
        logger = create_decision_logger(log_path)

        # Act
        logger.log_decision(RequestContext(timestamp=1.0), Allow(), policy_checksum="sha256:abc", eval_ms=0)

        # Assert
        (line,) = _read_lines(log_path)
        assert line["decision"] == "allow"
        assert "rule_id" not in line
        assert "retry_after" not in line

    def test_deny_reason(self, log_path):
        # Arrange
        logger = create_decision_logger(log_path)

        # Act
        logger.log_decision(
            RequestContext(timestamp=1.0), Deny("denylisted", "rule_0"), policy_checksum="sha256:abc", eval_ms=0
        )

        # Assert
        assert _read_lines(log_path)[0]["reason"] == "denylisted"

    def test_write_failure_is_reported_to_system_log(self, log_path):
        # Arrange
        logger = create_decision_logger(log_path)
        handler = logging.getLogger(DECISION_LOGGER_NAME).handlers[0]

        # Act
        with (
            patch.object(handler, "stream") as stream,
            patch("x402_policy.telemetry.audit.decision_logger.get_system_logger") as system_logger,
        ):
            stream.write.side_effect = OSError("disk full")
            logger.log_decision(RequestContext(timestamp=1.0), Allow(), policy_checksum="c", eval_ms=0)

        # Assert
        event = system_logger.return_value.error.call_args.args[0]
        assert event["event"] == "decision_log_failed"
        assert event["error_type"] == "OSError"
        assert event["log_path"] == str(log_path)


class TestDecisionEvent:
    """Tests for the DecisionEvent model."""

    def test_rejects_unknown_fields(self):
        with pytest.raises(ValidationError):
            DecisionEvent(
                decision="allow",
                subject_key="anonymous",
                amount=0,
                timestamp=1.0,
                policy_checksum="c",
                policy_eval_ms=0,
                extra_field=1,
            )


# =============================================================================
# Tests: System logger
# =============================================================================


class TestSystemLogger:
    """Tests for configure_system_logger()."""

    def test_writes_to_log_dir(self, tmp_path):
        # Act
        logger = configure_system_logger(tmp_path, "INFO")
        logger.info({"event": "service_started"})

        # Assert
        assert _read_lines(get_system_log_path(tmp_path))[0]["event"] == "service_started"

        # Cleanup: back to stderr for other tests
        configure_system_logger(None)

    def test_level_filters(self, tmp_path):
        # Act
        logger = configure_system_logger(tmp_path, "ERROR")
        logger.info({"event": "hidden"})
        logger.error({"event": "shown"})

        # Assert
        assert [line["event"] for line in _read_lines(get_system_log_path(tmp_path))] == ["shown"]

        configure_system_logger(None)
