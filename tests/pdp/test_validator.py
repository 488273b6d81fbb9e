"""Unit tests for the policy validator.

Tests use the AAA pattern (Arrange-Act-Assert) for clarity.
"""

import pytest

from x402_policy.exceptions import PolicyContractError, PolicyValidationError
from x402_policy.pdp import (
    Severity,
    ValidatedPolicy,
    ValidationIssue,
    check_policy,
    parse_policy_data,
    validate_policy,
)


def _policy(*rules, **sections):
    return parse_policy_data({"version": "1.0", "policies": list(rules), **sections})


def _codes(report, severity):
    return [issue.code for issue in report.issues if issue.severity is severity]


ALLOW_AGENTS = {"type": "allowlist", "field": "agent_id", "values": ["agent-1", "agent-2"]}
RATE_LIMIT = {"type": "rate_limit", "max_requests": 10, "window_seconds": 60}
SPENDING_CAP = {"type": "spending_cap", "max_amount": 5, "currency": "USDC", "window_seconds": 3600}


# =============================================================================
# Tests: Valid policies
# =============================================================================


class TestValidPolicy:
    """Tests for policies without errors."""

    def test_returns_validated_policy_with_info(self):
        """Given a clean policy, reports a single info issue."""
        # Arrange
        policy = _policy(ALLOW_AGENTS, RATE_LIMIT)

        # Act
        validated = validate_policy(policy)

        # Assert
        assert isinstance(validated, ValidatedPolicy)
        assert validated.policy is policy
        assert [i.message for i in validated.report.issues] == ["All policies valid"]
        assert validated.checksum.startswith("sha256:")

    def test_checksum_is_deterministic(self):
        """Same policy content gives the same checksum."""
        # Act
        first = validate_policy(_policy(ALLOW_AGENTS, RATE_LIMIT))
        second = validate_policy(_policy(ALLOW_AGENTS, RATE_LIMIT))

        # Assert
        assert first.checksum == second.checksum

    def test_validated_policy_is_immutable(self):
        """Attributes of a ValidatedPolicy cannot be reassigned."""
        # Arrange
        validated = validate_policy(_policy(RATE_LIMIT))

        # Act / Assert
        with pytest.raises(AttributeError):
            validated._policy = None

    def test_report_is_a_copy(self):
        """Adding to the returned report does not change the validated policy."""
        # Arrange
        validated = validate_policy(_policy(RATE_LIMIT))

        # Act
        validated.report.add(ValidationIssue(Severity.ERROR, "injected", "Injected error"))

        # Assert
        assert validated.report.is_valid
        assert [i.code for i in validated.report.issues] == ["valid"]

    def test_cannot_be_constructed_directly(self):
        """Only validate_policy() creates ValidatedPolicy."""
        # Arrange
        policy = _policy(RATE_LIMIT)

        # Act / Assert
        with pytest.raises(PolicyContractError):
            ValidatedPolicy(policy, check_policy(policy), "sha256:0")

    def test_warnings_do_not_block(self):
        """Given only warnings, validation succeeds and carries them."""
        # Arrange
        policy = _policy({"type": "denylist", "field": "agent_id", "values": ["x", "x"]})

        # Act
        validated = validate_policy(policy)

        # Assert
        assert _codes(validated.report, Severity.WARNING) == ["duplicate_value"]


# =============================================================================
# Tests: Errors (fail-slow)
# =============================================================================


class TestValidationErrors:
    """Tests for policies that must be rejected."""

    def test_empty_policy(self):
        """Given no rules, reports an error."""
        with pytest.raises(PolicyValidationError) as exc_info:
            validate_policy(_policy())

        assert _codes(exc_info.value.report, Severity.ERROR) == ["empty_policy"]

    def test_empty_policy_still_checks_pricing(self):
        """Validation keeps going after the empty rule list error."""
        report = check_policy(_policy(pricing={"amount": -1, "currency": "usd"}))

        assert _codes(report, Severity.ERROR) == ["empty_policy", "pricing", "currency"]

    @pytest.mark.parametrize(
        "version",
        ["", '1.0 """ oops', "1.0\nthrow new Error('injected')", "1.0 */", "v" * 33],
    )
    def test_version_format(self, version):
        """Versions are short tokens of letters, digits, dots, underscores and dashes."""
        with pytest.raises(PolicyValidationError) as exc_info:
            validate_policy(parse_policy_data({"version": version, "policies": [RATE_LIMIT]}))

        assert _codes(exc_info.value.report, Severity.ERROR) == ["version"]

    def test_conflict_between_allowlist_and_denylist(self):
        """Given the same value in allow and deny lists, names value, field and both indices."""
        # Arrange
        policy = _policy(
            {"type": "allowlist", "field": "agent_id", "values": ["agent-1", "shared"]},
            RATE_LIMIT,
            {"type": "denylist", "field": "agent_id", "values": ["shared"]},
        )

        # Act
        with pytest.raises(PolicyValidationError) as exc_info:
            validate_policy(policy)

        # Assert
        conflicts = [i for i in exc_info.value.report.errors if i.code == "conflict"]
        assert len(conflicts) == 1
        issue = conflicts[0]
        assert "'shared'" in issue.message
        assert "agent_id" in issue.message
        assert issue.rule_indices == (0, 2)
        descriptions = [s.description for s in issue.suggestions]
        assert descriptions == ["Remove from denylist", "Remove from allowlist"]

    def test_same_value_on_different_fields_is_not_a_conflict(self):
        """Allow and deny lists on different attributes never conflict."""
        # Arrange
        policy = _policy(
            {"type": "allowlist", "field": "agent_id", "values": ["x"]},
            {"type": "denylist", "field": "wallet_address", "values": ["x"]},
        )

        # Act
        report = check_policy(policy)

        # Assert
        assert report.is_valid

    @pytest.mark.parametrize(
        "rule",
        [
            {"type": "rate_limit", "max_requests": 0, "window_seconds": 60},
            {"type": "rate_limit", "max_requests": 1, "window_seconds": 0},
            {"type": "rate_limit", "max_requests": 1, "window_seconds": 31_536_001},
            {"type": "spending_cap", "max_amount": 0, "currency": "USDC", "window_seconds": 60},
            {"type": "spending_cap", "max_amount": -1.5, "currency": "USDC", "window_seconds": 60},
            {"type": "spending_cap", "max_amount": float("inf"), "currency": "USDC", "window_seconds": 60},
        ],
    )
    def test_bounds(self, rule):
        """Given an out-of-range number, reports a bounds error."""
        # Act
        report = check_policy(_policy(rule))

        # Assert
        assert "bounds" in _codes(report, Severity.ERROR)

    def test_window_bounds_are_inclusive(self):
        """1 second and 365 days are both accepted."""
        # Arrange
        policy = _policy(
            {"type": "rate_limit", "max_requests": 1, "window_seconds": 1},
            {"type": "spending_cap", "max_amount": 1, "currency": "USDC", "window_seconds": 31_536_000},
        )

        # Act
        report = check_policy(policy)

        # Assert
        assert report.is_valid

    @pytest.mark.parametrize("pattern", ["*agent", "ag*ent", "a**", ""])
    def test_pattern_syntax(self, pattern):
        """Given a misplaced wildcard or empty value, reports a pattern error."""
        # Act
        report = check_policy(_policy({"type": "allowlist", "field": "agent_id", "values": [pattern]}))

        # Assert
        assert "pattern_syntax" in _codes(report, Severity.ERROR)

    def test_empty_values(self):
        """Given a list rule with no values, reports an error."""
        report = check_policy(_policy({"type": "denylist", "field": "ip_address", "values": []}))

        assert _codes(report, Severity.ERROR) == ["empty_values"]

    @pytest.mark.parametrize("currency", ["usdc", "U", "TOOLONGCURRENCY", "US-D"])
    def test_currency_format(self, currency):
        """Given a malformed currency code, reports an error."""
        rule = {"type": "spending_cap", "max_amount": 5, "currency": currency, "window_seconds": 60}

        report = check_policy(_policy(rule))

        assert "currency" in _codes(report, Severity.ERROR)

    def test_pricing_checks(self):
        """Negative prices and bad route patterns are errors."""
        # Arrange
        policy = _policy(RATE_LIMIT, pricing={"amount": -1, "routes": {"/a*b": 1, "/ok/*": -2}})

        # Act
        codes = _codes(check_policy(policy), Severity.ERROR)

        # Assert
        assert codes.count("pricing") == 2
        assert codes.count("pattern_syntax") == 1

    def test_collects_all_errors_in_one_pass(self):
        """Every error is reported, not just the first."""
        # Arrange
        policy = _policy(
            {"type": "rate_limit", "max_requests": 0, "window_seconds": 60},
            {"type": "allowlist", "field": "agent_id", "values": ["a*b"]},
            {"type": "spending_cap", "max_amount": 5, "currency": "usd", "window_seconds": 60},
        )

        # Act
        with pytest.raises(PolicyValidationError) as exc_info:
            validate_policy(policy)

        # Assert
        assert _codes(exc_info.value.report, Severity.ERROR) == ["bounds", "pattern_syntax", "currency"]
        assert "3 errors" in str(exc_info.value)


# =============================================================================
# Tests: Warnings
# =============================================================================


class TestValidationWarnings:
    """Tests for non-blocking findings."""

    def test_multiple_rate_limits_names_most_restrictive(self):
        """Given two rate limits, suggests keeping the tighter one."""
        # Arrange
        policy = _policy(
            {"type": "rate_limit", "max_requests": 100, "window_seconds": 60},
            {"type": "rate_limit", "max_requests": 10, "window_seconds": 60},
        )

        # Act
        report = check_policy(policy)

        # Assert
        [issue] = report.warnings
        assert issue.code == "multiple_rate_limits"
        assert issue.rule_indices == (0, 1)
        assert "Keep policy #1" in issue.suggestions[0].action

    def test_multiple_spending_caps_names_most_restrictive(self):
        """Given two caps, suggests keeping the tighter one."""
        # Arrange
        policy = _policy(
            {"type": "spending_cap", "max_amount": 1, "currency": "USDC", "window_seconds": 60},
            {"type": "spending_cap", "max_amount": 100, "currency": "USDC", "window_seconds": 60},
        )

        # Act
        report = check_policy(policy)

        # Assert
        [issue] = report.warnings
        assert issue.code == "multiple_spending_caps"
        assert "Keep policy #0" in issue.suggestions[0].action

    def test_denylist_pattern_shadowing_allowlist_value(self):
        """Given a deny wildcard covering an allowed literal, warns."""
        # Arrange
        policy = _policy(
            {"type": "allowlist", "field": "agent_id", "values": ["agent-7"]},
            {"type": "denylist", "field": "agent_id", "values": ["agent-*"]},
        )

        # Act
        report = check_policy(policy)

        # Assert
        assert report.is_valid
        assert _codes(report, Severity.WARNING) == ["shadowed_value"]

    def test_report_to_dict(self):
        """Report serialises with status and counts."""
        # Arrange
        report = check_policy(_policy({"type": "denylist", "field": "agent_id", "values": ["x", "x"]}))

        # Act
        data = report.to_dict()

        # Assert
        assert data["status"] == "warnings"
        assert data["error_count"] == 0
        assert data["warning_count"] == 1
        assert data["issues"][0]["rule_indices"] == [0]
