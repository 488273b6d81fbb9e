"""Decision types produced by the policy engine.

A Decision is a normal, well-typed business outcome, never an error:

    Allow                   request may proceed
    Deny                    denylisted, or not in an allowlist
    RateLimited             sliding window is full; retry later
    SpendingCapExceeded     the request's cost would exceed the cap

Every variant serializes to the same diagnostic shape via ``to_dict()``:
``{allowed, decision, reason, retry_after?, spending?, rule_id?}``.
"""

from __future__ import annotations

__all__ = [
    "Allow",
    "Decision",
    "DecisionKind",
    "Deny",
    "RateLimited",
    "SpendingCapExceeded",
]

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

from x402_policy.constants import REASON_RATE_LIMITED, REASON_SPENDING_CAP


class DecisionKind(str, Enum):
    """Stable names used in logs, generated code and API responses."""

    ALLOW = "allow"
    DENY = "deny"
    RATE_LIMITED = "rate_limited"
    SPENDING_CAP_EXCEEDED = "spending_cap_exceeded"


@dataclass(frozen=True)
class Allow:
    """Request may proceed.

    Attributes:
        matched_patterns: Authoritative (most specific) allowlist pattern per
            field, for downstream pricing or routing decisions.
    """

    matched_patterns: dict[str, str] = field(default_factory=dict)

    kind = DecisionKind.ALLOW
    allowed = True
    rule_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"allowed": True, "decision": self.kind.value, "reason": None}
        if self.matched_patterns:
            result["matched_patterns"] = dict(self.matched_patterns)
        return result


@dataclass(frozen=True)
class Deny:
    """Request rejected by an allowlist or denylist rule."""

    reason: str
    rule_id: str | None = None

    kind = DecisionKind.DENY
    allowed = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "allowed": False,
            "decision": self.kind.value,
            "reason": self.reason,
            "rule_id": self.rule_id,
        }


@dataclass(frozen=True)
class RateLimited:
    """Sliding window for the subject is full."""

    retry_after_seconds: int
    rule_id: str | None = None

    kind = DecisionKind.RATE_LIMITED
    allowed = False
    reason = REASON_RATE_LIMITED

    def to_dict(self) -> dict[str, Any]:
        return {
            "allowed": False,
            "decision": self.kind.value,
            "reason": self.reason,
            "retry_after": self.retry_after_seconds,
            "rule_id": self.rule_id,
        }


@dataclass(frozen=True)
class SpendingCapExceeded:
    """Accumulated spend plus this request's cost would exceed the cap.

    Attributes:
        current: Amount already spent in the active window.
        limit: The cap's max_amount.
        remaining: What can still be spent in this window (never negative).
        currency: The cap's currency.
    """

    current: float
    limit: float
    remaining: float
    currency: str = ""
    rule_id: str | None = None

    kind = DecisionKind.SPENDING_CAP_EXCEEDED
    allowed = False
    reason = REASON_SPENDING_CAP

    def to_dict(self) -> dict[str, Any]:
        return {
            "allowed": False,
            "decision": self.kind.value,
            "reason": self.reason,
            "spending": {
                "current": self.current,
                "limit": self.limit,
                "remaining": self.remaining,
                "currency": self.currency,
            },
            "rule_id": self.rule_id,
        }


Decision = Union[Allow, Deny, RateLimited, SpendingCapExceeded]
