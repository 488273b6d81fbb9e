"""Policy validator - consistency checks before a policy is trusted.

Validation is fail-slow: every problem is collected in a ValidationReport
so the operator sees all of them in one pass. It is pure and deterministic;
validating the same PolicyConfig twice yields the same report.

Checks:
1. Non-empty rule list, version format
2. Bounds: window_seconds in [1, 31536000], max_requests >= 1, max_amount > 0
3. Pattern syntax: "*" only as the last character
4. Allowlist/denylist conflicts on the same field (error, with fixes)
5. Duplicate values inside one rule (warning)
6. Denylist patterns shadowing allowlist values (warning)
7. Several rate limits / spending caps (warning naming the most restrictive)
8. Pricing section sanity

Only validate_policy() can create a ValidatedPolicy, which is what the
engine and the code generator accept.
"""

from __future__ import annotations

__all__ = [
    "Severity",
    "Suggestion",
    "ValidatedPolicy",
    "ValidationIssue",
    "ValidationReport",
    "check_policy",
    "policy_checksum",
    "validate_policy",
]

import hashlib
import json
import math
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator

from x402_policy.constants import (
    MAX_CURRENCY_LENGTH,
    MAX_VERSION_LENGTH,
    MAX_WINDOW_SECONDS,
    MIN_CURRENCY_LENGTH,
    MIN_WINDOW_SECONDS,
)
from x402_policy.exceptions import PolicyContractError, PolicyValidationError
from x402_policy.pdp.matcher import is_wildcard, match_pattern, pattern_syntax_error
from x402_policy.pdp.policy import (
    AllowlistRule,
    AuditConfig,
    DenylistRule,
    PolicyConfig,
    PricingConfig,
    RateLimitRule,
    SpendingCapRule,
)

_CURRENCY_RE = re.compile(rf"^[A-Z0-9]{{{MIN_CURRENCY_LENGTH},{MAX_CURRENCY_LENGTH}}}$")
_VERSION_RE = re.compile(rf"^[0-9A-Za-z._-]{{1,{MAX_VERSION_LENGTH}}}$")


class Severity(str, Enum):
    """Severity of a validation issue. Only ERROR blocks a policy."""

    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


@dataclass(frozen=True)
class Suggestion:
    """A suggested fix for an issue."""

    description: str
    action: str

    def __str__(self) -> str:
        return f"{self.description}: {self.action}"


@dataclass(frozen=True)
class ValidationIssue:
    """One validation finding.

    Attributes:
        severity: error, warning or info.
        code: Stable machine-readable code (e.g. "conflict", "bounds").
        message: One-line summary.
        details: Optional longer explanation.
        suggestions: Suggested fixes.
        rule_indices: Indices of the rules involved.
    """

    severity: Severity
    code: str
    message: str
    details: str | None = None
    suggestions: tuple[Suggestion, ...] = ()
    rule_indices: tuple[int, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "severity": self.severity.value,
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "suggestions": [str(s) for s in self.suggestions],
            "rule_indices": list(self.rule_indices),
        }


@dataclass
class ValidationReport:
    """All issues found for one policy."""

    issues: list[ValidationIssue] = field(default_factory=list)

    def add(self, issue: ValidationIssue) -> None:
        self.issues.append(issue)

    @property
    def errors(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity is Severity.ERROR]

    @property
    def warnings(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity is Severity.WARNING]

    @property
    def has_errors(self) -> bool:
        return any(i.severity is Severity.ERROR for i in self.issues)

    @property
    def has_warnings(self) -> bool:
        return any(i.severity is Severity.WARNING for i in self.issues)

    @property
    def is_valid(self) -> bool:
        return not self.has_errors

    def counts(self) -> tuple[int, int, int]:
        """(errors, warnings, infos)."""
        errors = sum(1 for i in self.issues if i.severity is Severity.ERROR)
        warnings = sum(1 for i in self.issues if i.severity is Severity.WARNING)
        return errors, warnings, len(self.issues) - errors - warnings

    def to_dict(self) -> dict[str, Any]:
        errors, warnings, _ = self.counts()
        status = "invalid" if errors else ("warnings" if warnings else "valid")
        return {
            "status": status,
            "error_count": errors,
            "warning_count": warnings,
            "issues": [i.to_dict() for i in self.issues],
        }


_CONSTRUCTION_TOKEN = object()


class ValidatedPolicy:
    """A PolicyConfig that passed validation. Immutable and thread-safe.

    Create with validate_policy(); direct construction raises
    PolicyContractError. Reload replaces the whole object.

    Attributes:
        policy: The validated PolicyConfig.
        report: Copy of the validation report (warnings and infos only).
            Changing the copy does not change the policy.
        checksum: "sha256:<hex>" of the canonical JSON form of the policy.
    """

    __slots__ = ("_policy", "_issues", "_checksum")

    def __init__(
        self,
        policy: PolicyConfig,
        report: ValidationReport,
        checksum: str,
        *,
        _token: object = None,
    ) -> None:
        if _token is not _CONSTRUCTION_TOKEN:
            raise PolicyContractError("ValidatedPolicy can only be created by validate_policy()")
        object.__setattr__(self, "_policy", policy)
        object.__setattr__(self, "_issues", tuple(report.issues))
        object.__setattr__(self, "_checksum", checksum)

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError("ValidatedPolicy is immutable")

    def __delattr__(self, name: str) -> None:
        raise AttributeError("ValidatedPolicy is immutable")

    def __repr__(self) -> str:
        return f"ValidatedPolicy(rules={len(self._policy.policies)}, checksum={self._checksum[:19]}...)"

    @property
    def policy(self) -> PolicyConfig:
        return self._policy

    @property
    def report(self) -> ValidationReport:
        return ValidationReport(list(self._issues))

    @property
    def checksum(self) -> str:
        return self._checksum

    @property
    def version(self) -> str:
        return self._policy.version

    @property
    def rules(self) -> list[Any]:
        return list(self._policy.policies)

    @property
    def pricing(self) -> PricingConfig:
        return self._policy.pricing

    @property
    def audit(self) -> AuditConfig:
        return self._policy.audit

    def iter_rules(self) -> Iterator[tuple[int, str, Any]]:
        return self._policy.iter_rules()


def policy_checksum(policy: PolicyConfig) -> str:
    """SHA-256 over the canonical JSON form of a policy."""
    canonical = json.dumps(policy.model_dump(mode="json"), sort_keys=True, separators=(",", ":"))
    return "sha256:" + hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def validate_policy(policy: PolicyConfig) -> ValidatedPolicy:
    """Validate a parsed policy.

    Args:
        policy: PolicyConfig from the parser.

    Returns:
        ValidatedPolicy carrying non-blocking warnings.

    Raises:
        PolicyValidationError: If any error was found. ``report`` lists all.
    """
    report = check_policy(policy)
    if report.has_errors:
        raise PolicyValidationError(report)
    return ValidatedPolicy(policy, report, policy_checksum(policy), _token=_CONSTRUCTION_TOKEN)


def check_policy(policy: PolicyConfig) -> ValidationReport:
    """Run every check and return the full report. Never raises."""
    report = ValidationReport()
    _check_version(policy.version, report)

    if not policy.policies:
        report.add(
            ValidationIssue(
                Severity.ERROR,
                "empty_policy",
                "Policy must contain at least one rule",
                suggestions=(Suggestion("Add a rule", "Define at least one entry under 'policies'"),),
            )
        )
        _check_pricing(policy.pricing, report)
        return report

    for idx, _rid, rule in policy.iter_rules():
        if isinstance(rule, (AllowlistRule, DenylistRule)):
            _check_list_rule(idx, rule, report)
        elif isinstance(rule, RateLimitRule):
            _check_rate_limit(idx, rule, report)
        elif isinstance(rule, SpendingCapRule):
            _check_spending_cap(idx, rule, report)

    _check_conflicts(policy, report)
    _check_shadowing(policy, report)
    _check_multiple_rate_limits(policy, report)
    _check_multiple_spending_caps(policy, report)
    _check_pricing(policy.pricing, report)

    if not report.issues:
        report.add(
            ValidationIssue(
                Severity.INFO,
                "valid",
                "All policies valid",
                details=f"Validated {len(policy.policies)} policy rules with no conflicts",
            )
        )
    return report


# =============================================================================
# Per-rule checks
# =============================================================================


def _check_list_rule(idx: int, rule: AllowlistRule | DenylistRule, report: ValidationReport) -> None:
    if not rule.values:
        report.add(
            ValidationIssue(
                Severity.ERROR,
                "empty_values",
                f"{rule.type} for {rule.field} has no values (policy #{idx})",
                suggestions=(Suggestion("Add values", f"List at least one {rule.field} value or remove the rule"),),
                rule_indices=(idx,),
            )
        )
        return

    seen: set[str] = set()
    reported: set[str] = set()
    for value in rule.values:
        problem = pattern_syntax_error(value)
        if problem is not None:
            report.add(
                ValidationIssue(
                    Severity.ERROR,
                    "pattern_syntax",
                    f"Invalid pattern {value!r} in {rule.type} (policy #{idx}): {problem}",
                    suggestions=(
                        Suggestion("Fix pattern", "Use a literal value or a prefix followed by a single trailing '*'"),
                    ),
                    rule_indices=(idx,),
                )
            )
        if value in seen and value not in reported:
            reported.add(value)
            report.add(
                ValidationIssue(
                    Severity.WARNING,
                    "duplicate_value",
                    f"Duplicate value {value!r} in {rule.type} (policy #{idx})",
                    suggestions=(Suggestion("Remove duplicate", f"Keep a single {value!r} entry"),),
                    rule_indices=(idx,),
                )
            )
        seen.add(value)


def _window_issue(idx: int, kind: str, window_seconds: int) -> ValidationIssue | None:
    if MIN_WINDOW_SECONDS <= window_seconds <= MAX_WINDOW_SECONDS:
        return None
    return ValidationIssue(
        Severity.ERROR,
        "bounds",
        f"{kind} window_seconds must be between {MIN_WINDOW_SECONDS} and {MAX_WINDOW_SECONDS} "
        f"(policy #{idx}, got {window_seconds})",
        suggestions=(Suggestion("Fix window", "Use a window between 1 second and 365 days"),),
        rule_indices=(idx,),
    )


def _check_rate_limit(idx: int, rule: RateLimitRule, report: ValidationReport) -> None:
    if rule.max_requests < 1:
        report.add(
            ValidationIssue(
                Severity.ERROR,
                "bounds",
                f"rate_limit max_requests must be >= 1 (policy #{idx}, got {rule.max_requests})",
                suggestions=(Suggestion("Fix limit", "Set max_requests to a positive integer"),),
                rule_indices=(idx,),
            )
        )
    issue = _window_issue(idx, "rate_limit", rule.window_seconds)
    if issue is not None:
        report.add(issue)


def _check_spending_cap(idx: int, rule: SpendingCapRule, report: ValidationReport) -> None:
    if not math.isfinite(rule.max_amount) or rule.max_amount <= 0:
        report.add(
            ValidationIssue(
                Severity.ERROR,
                "bounds",
                f"spending_cap max_amount must be a positive number (policy #{idx}, got {rule.max_amount})",
                suggestions=(Suggestion("Fix cap", "Set max_amount to a positive amount"),),
                rule_indices=(idx,),
            )
        )
    if not _CURRENCY_RE.match(rule.currency):
        report.add(
            ValidationIssue(
                Severity.ERROR,
                "currency",
                f"Invalid currency {rule.currency!r} (policy #{idx})",
                details=f"Currency codes are {MIN_CURRENCY_LENGTH}-{MAX_CURRENCY_LENGTH} uppercase letters or digits",
                suggestions=(Suggestion("Fix currency", "Use a code such as USDC, SOL or USD"),),
                rule_indices=(idx,),
            )
        )
    issue = _window_issue(idx, "spending_cap", rule.window_seconds)
    if issue is not None:
        report.add(issue)


# =============================================================================
# Cross-rule checks
# =============================================================================


def _list_rules(policy: PolicyConfig, kind: type) -> list[tuple[int, Any]]:
    return [(idx, rule) for idx, _rid, rule in policy.iter_rules() if isinstance(rule, kind)]


def _check_conflicts(policy: PolicyConfig, report: ValidationReport) -> None:
    """Same value in an allowlist and a denylist for the same field."""
    allowlists = _list_rules(policy, AllowlistRule)
    denylists = _list_rules(policy, DenylistRule)

    for allow_idx, allow in allowlists:
        for deny_idx, deny in denylists:
            if allow.field != deny.field:
                continue
            deny_values = set(deny.values)
            conflicting: list[str] = []
            for value in allow.values:
                if value in deny_values and value not in conflicting:
                    conflicting.append(value)
            for value in conflicting:
                report.add(
                    ValidationIssue(
                        Severity.ERROR,
                        "conflict",
                        f"CONFLICT: {allow.field} {value!r} is in both allowlist (policy #{allow_idx}) "
                        f"and denylist (policy #{deny_idx})",
                        details=f"Conflicting value: {value}\nPolicy indices: #{allow_idx}, #{deny_idx}",
                        suggestions=(
                            Suggestion(
                                "Remove from denylist",
                                f"Remove {value!r} from denylist policy (index #{deny_idx})",
                            ),
                            Suggestion(
                                "Remove from allowlist",
                                f"Remove {value!r} from allowlist policy (index #{allow_idx})",
                            ),
                        ),
                        rule_indices=(allow_idx, deny_idx),
                    )
                )


def _check_shadowing(policy: PolicyConfig, report: ValidationReport) -> None:
    """Denylist wildcard that swallows a literal allowlist value."""
    allowlists = _list_rules(policy, AllowlistRule)
    denylists = _list_rules(policy, DenylistRule)

    for allow_idx, allow in allowlists:
        for deny_idx, deny in denylists:
            if allow.field != deny.field:
                continue
            for value in allow.values:
                if is_wildcard(value) or value in deny.values:
                    continue
                shadowing = [p for p in deny.values if is_wildcard(p) and match_pattern(p, value)]
                if shadowing:
                    report.add(
                        ValidationIssue(
                            Severity.WARNING,
                            "shadowed_value",
                            f"Allowlisted {allow.field} {value!r} (policy #{allow_idx}) is always denied by "
                            f"pattern {shadowing[0]!r} (policy #{deny_idx})",
                            details="Deny rules are evaluated first; this allowlist entry can never pass.",
                            suggestions=(
                                Suggestion("Narrow the denylist", f"Make {shadowing[0]!r} more specific"),
                                Suggestion("Remove from allowlist", f"Drop {value!r} from policy #{allow_idx}"),
                            ),
                            rule_indices=(allow_idx, deny_idx),
                        )
                    )


def _check_multiple_rate_limits(policy: PolicyConfig, report: ValidationReport) -> None:
    limits = _list_rules(policy, RateLimitRule)
    if len(limits) < 2:
        return
    valid = [(idx, r) for idx, r in limits if r.max_requests > 0 and r.window_seconds > 0]
    details = "\n".join(f"Policy #{idx}: {r.max_requests} requests / {r.window_seconds} seconds" for idx, r in limits)
    action = "Remove duplicate rate limits"
    if valid:
        strictest, _ = min(valid, key=lambda item: item[1].max_requests / item[1].window_seconds)
        action = f"Keep policy #{strictest} (most restrictive) and remove others"
    report.add(
        ValidationIssue(
            Severity.WARNING,
            "multiple_rate_limits",
            "Multiple rate limits defined",
            details=f"Found {len(limits)} rate limit policies:\n{details}",
            suggestions=(
                Suggestion("Use most restrictive limit", action),
                Suggestion("Keep all if intentional", "All rate limits are enforced; the tightest one applies"),
            ),
            rule_indices=tuple(idx for idx, _ in limits),
        )
    )


def _check_multiple_spending_caps(policy: PolicyConfig, report: ValidationReport) -> None:
    caps = _list_rules(policy, SpendingCapRule)
    if len(caps) < 2:
        return
    valid = [(idx, c) for idx, c in caps if c.max_amount > 0 and c.window_seconds > 0]
    details = "\n".join(
        f"Policy #{idx}: {c.max_amount} {c.currency} / {c.window_seconds} seconds" for idx, c in caps
    )
    action = "Remove duplicate spending caps"
    if valid:
        strictest, _ = min(valid, key=lambda item: item[1].max_amount / item[1].window_seconds)
        action = f"Keep policy #{strictest} (most restrictive) and remove others"
    report.add(
        ValidationIssue(
            Severity.WARNING,
            "multiple_spending_caps",
            "Multiple spending caps defined",
            details=f"Found {len(caps)} spending cap policies:\n{details}",
            suggestions=(
                Suggestion("Use most restrictive cap", action),
                Suggestion("Keep all if intentional", "All spending caps are enforced; the tightest one applies"),
            ),
            rule_indices=tuple(idx for idx, _ in caps),
        )
    )


def _check_pricing(pricing: PricingConfig, report: ValidationReport) -> None:
    if not math.isfinite(pricing.amount) or pricing.amount < 0:
        report.add(
            ValidationIssue(
                Severity.ERROR,
                "pricing",
                f"pricing.amount must be a non-negative number (got {pricing.amount})",
            )
        )
    if not _CURRENCY_RE.match(pricing.currency):
        report.add(
            ValidationIssue(Severity.ERROR, "currency", f"Invalid pricing currency {pricing.currency!r}")
        )
    for pattern, price in pricing.routes.items():
        problem = pattern_syntax_error(pattern)
        if problem is not None:
            report.add(
                ValidationIssue(Severity.ERROR, "pattern_syntax", f"Invalid route pattern {pattern!r}: {problem}")
            )
        if not math.isfinite(price) or price < 0:
            report.add(
                ValidationIssue(
                    Severity.ERROR,
                    "pricing",
                    f"Route price for {pattern!r} must be a non-negative number (got {price})",
                )
            )


def _check_version(version: str, report: ValidationReport) -> None:
    if not _VERSION_RE.match(version):
        report.add(
            ValidationIssue(
                Severity.ERROR,
                "version",
                f"Invalid policy version {version!r}",
                details=f"Versions are 1-{MAX_VERSION_LENGTH} letters, digits, '.', '_' or '-'",
                suggestions=(Suggestion("Fix version", 'Use a version such as "1.0"'),),
            )
        )
