"""Exception hierarchy for x402-policy.

User-facing errors (parse, validation, unsupported framework) are reported
as diagnostics. InternalError and its subclasses signal a broken invariant
and must never be confused with a Decision: a Deny/RateLimited/
SpendingCapExceeded outcome is a normal return value, not an exception.
"""

from __future__ import annotations

__all__ = [
    "X402PolicyError",
    "PolicyParseError",
    "PolicyValidationError",
    "UnsupportedFrameworkError",
    "InternalError",
    "PolicyContractError",
    "PolicyEnforcementFailure",
    "CodegenInvariantError",
]

from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from x402_policy.pdp.validator import ValidationReport


class X402PolicyError(Exception):
    """Base class for all x402-policy errors."""


class PolicyParseError(X402PolicyError, ValueError):
    """Configuration text could not be turned into a Policy.

    Parsing is fail-fast: the error names the first offending construct.

    Attributes:
        message: Human-readable description.
        rule_index: Index of the offending entry in ``policies`` (None for
            document-level problems such as invalid YAML).
        field: Offending field name, if known.
        expected: What the parser expected at that location.
    """

    def __init__(
        self,
        message: str,
        *,
        rule_index: int | None = None,
        field: str | None = None,
        expected: str | None = None,
    ) -> None:
        self.message = message
        self.rule_index = rule_index
        self.field = field
        self.expected = expected
        super().__init__(self._format())

    def _format(self) -> str:
        where = []
        if self.rule_index is not None:
            where.append(f"policy #{self.rule_index}")
        if self.field:
            where.append(f"field '{self.field}'")
        prefix = f"{', '.join(where)}: " if where else ""
        suffix = f" (expected {self.expected})" if self.expected else ""
        return f"{prefix}{self.message}{suffix}"


class PolicyValidationError(X402PolicyError, ValueError):
    """A parsed Policy failed validation.

    Validation is fail-slow: ``report`` holds every issue found in one pass.
    """

    def __init__(self, report: "ValidationReport") -> None:
        self.report = report
        errors = report.errors
        count = len(errors)
        summary = "; ".join(issue.message for issue in errors)
        super().__init__(f"Policy validation failed with {count} error{'s' if count != 1 else ''}: {summary}")


class UnsupportedFrameworkError(X402PolicyError, ValueError):
    """Requested code generation target is not supported."""

    def __init__(self, framework: str, supported: Iterable[str]) -> None:
        self.framework = framework
        self.supported = tuple(supported)
        super().__init__(
            f"Unsupported framework '{framework}'. Supported frameworks: {', '.join(self.supported)}"
        )


class InternalError(X402PolicyError, RuntimeError):
    """An internal invariant was violated. Not a user error."""


class PolicyContractError(InternalError):
    """The engine was used against its contract (e.g., un-validated policy)."""


class PolicyEnforcementFailure(InternalError):
    """Policy evaluation crashed unexpectedly.

    Decisions cannot be trusted after this; callers should fail closed.
    """


class CodegenInvariantError(InternalError):
    """An already validated policy failed re-validation during generation."""
