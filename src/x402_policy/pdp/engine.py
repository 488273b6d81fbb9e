"""Policy engine - evaluate a RequestContext against a ValidatedPolicy.

This module provides the PolicyEngine class that produces Allow / Deny /
RateLimited / SpendingCapExceeded decisions and commits usage after the
protected action succeeded.

Evaluation flow (fixed precedence, first non-Allow wins):
1. Denylist → Deny("denylisted")
2. Allowlist per present attribute → Deny("not in allowlist")
3. Rate limits → RateLimited(retry_after)
4. Spending caps → SpendingCapExceeded(current, limit, remaining)
5. → Allow

Design principles:
1. Deny always beats allow
2. evaluate() never mutates state; commit() is the only writer
3. A loaded policy is never edited in place; reload swaps the whole object
4. Business outcomes are return values; only broken contracts raise
"""

from __future__ import annotations

__all__ = [
    "PolicyEngine",
]

import math
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from x402_policy.constants import (
    MIN_RETRY_AFTER_SECONDS,
    REASON_DENYLISTED,
    REASON_NOT_IN_ALLOWLIST,
)
from x402_policy.context import RequestContext
from x402_policy.exceptions import InternalError, PolicyContractError, PolicyEnforcementFailure
from x402_policy.pdp.decision import Allow, Decision, Deny, RateLimited, SpendingCapExceeded
from x402_policy.pdp.matcher import matching_patterns, most_specific_match
from x402_policy.pdp.policy import AllowlistRule, DenylistRule, RateLimitRule, SpendingCapRule
from x402_policy.pdp.state import StateKey, StateStore, to_decimal
from x402_policy.pdp.validator import ValidatedPolicy


@dataclass(frozen=True)
class _AllowGroup:
    """Union of all allowlist values for one field."""

    rule_id: str
    patterns: tuple[str, ...]


@dataclass(frozen=True)
class _Stages:
    """Rules of one policy, bucketed by evaluation stage in document order."""

    deny: tuple[tuple[str, DenylistRule], ...] = ()
    allow: dict[str, _AllowGroup] = field(default_factory=dict)
    rate: tuple[tuple[str, RateLimitRule], ...] = ()
    spend: tuple[tuple[str, SpendingCapRule], ...] = ()

    @classmethod
    def from_policy(cls, policy: ValidatedPolicy) -> "_Stages":
        deny: list[tuple[str, DenylistRule]] = []
        allow_ids: dict[str, str] = {}
        allow_values: dict[str, list[str]] = {}
        rate: list[tuple[str, RateLimitRule]] = []
        spend: list[tuple[str, SpendingCapRule]] = []

        for _idx, rid, rule in policy.iter_rules():
            if isinstance(rule, DenylistRule):
                deny.append((rid, rule))
            elif isinstance(rule, AllowlistRule):
                # First allowlist for a field names the group in decisions
                allow_ids.setdefault(rule.field, rid)
                allow_values.setdefault(rule.field, []).extend(rule.values)
            elif isinstance(rule, RateLimitRule):
                rate.append((rid, rule))
            elif isinstance(rule, SpendingCapRule):
                spend.append((rid, rule))

        allow = {name: _AllowGroup(allow_ids[name], tuple(values)) for name, values in allow_values.items()}
        return cls(tuple(deny), allow, tuple(rate), tuple(spend))


class PolicyEngine:
    """Policy evaluation engine.

    Holds the active ValidatedPolicy and a StateStore. Many threads may call
    evaluate() and commit() concurrently; the policy is immutable and the
    store serialises updates per key.

    Example:
        engine = PolicyEngine(validate_policy(parse_policy(text)))
        request = RequestContext(agent_id="agent-7", estimated_cost=0.5)
        decision = engine.evaluate(request)
        if decision.allowed:
            ...  # run the protected action
            engine.commit(request)
    """

    def __init__(self, policy: ValidatedPolicy, state_store: StateStore | None = None) -> None:
        """Initialize the policy engine.

        Args:
            policy: Policy returned by validate_policy().
            state_store: Store for rate and spending windows. A fresh store is
                created when omitted; pass one to share state between engines.

        Raises:
            PolicyContractError: If ``policy`` is not a ValidatedPolicy.
        """
        _require_validated(policy)
        self._state = state_store if state_store is not None else StateStore()
        # Single reference, swapped atomically on reload
        self._active: tuple[ValidatedPolicy, _Stages] = (policy, _Stages.from_policy(policy))

    @property
    def policy(self) -> ValidatedPolicy:
        """Currently active policy."""
        return self._active[0]

    @property
    def state_store(self) -> StateStore:
        return self._state

    def evaluate(self, request: RequestContext, policy: ValidatedPolicy | None = None) -> Decision:
        """Evaluate a request against the active (or given) policy. Read-only on state.

        Args:
            request: Request attributes, cost and timestamp.
            policy: Policy to evaluate against instead of the active one.
                Callers that commit later pass the same policy to commit().

        Returns:
            Decision: Allow, Deny, RateLimited or SpendingCapExceeded.

        Raises:
            PolicyContractError: If ``request`` is not a RequestContext.
            PolicyEnforcementFailure: If evaluation fails unexpectedly.
                Decisions cannot be trusted; callers must fail closed.
        """
        if not isinstance(request, RequestContext):
            raise PolicyContractError(f"evaluate() expects a RequestContext, got {type(request).__name__}")

        # In-flight evaluations keep the policy they started with
        stages = self._stages_for(policy)
        try:
            return self._evaluate(stages, request)
        except InternalError:
            raise
        except Exception as e:
            raise PolicyEnforcementFailure(
                f"Policy evaluation failed unexpectedly: {type(e).__name__}: {e}. "
                "Cannot safely evaluate requests."
            ) from e

    def commit(self, request: RequestContext, policy: ValidatedPolicy | None = None) -> None:
        """Record usage for a request whose protected action succeeded.

        Appends the request instant to every rate window and adds the cost
        to every spending window of the subject. Call at most once per
        accepted request.

        Args:
            request: The request previously evaluated to Allow.
            policy: Policy the request was evaluated against. Defaults to
                the active policy; pass it when a reload may have happened
                in between so usage lands on the rules that allowed it.

        Raises:
            PolicyContractError: If ``request`` is not a RequestContext.
            PolicyEnforcementFailure: If the state update fails unexpectedly.
        """
        if not isinstance(request, RequestContext):
            raise PolicyContractError(f"commit() expects a RequestContext, got {type(request).__name__}")

        stages = self._stages_for(policy)
        subject = request.subject_key
        now = request.timestamp
        try:
            for rid, limit in stages.rate:
                self._state.record_request(StateKey(rid, subject), now, limit.window_seconds)
            if stages.spend:
                cost = to_decimal(request.estimated_cost)
                for rid, cap in stages.spend:
                    self._state.record_spend(StateKey(rid, subject), cost, now, cap.window_seconds)
        except Exception as e:
            raise PolicyEnforcementFailure(f"Failed to commit usage: {type(e).__name__}: {e}") from e

    def reload_policy(self, new_policy: ValidatedPolicy) -> dict[str, Any]:
        """Swap in a new policy. State is kept; keys are per rule id.

        Args:
            new_policy: Replacement policy from validate_policy().

        Returns:
            Dict with old/new rule counts and checksums.

        Raises:
            PolicyContractError: If ``new_policy`` is not a ValidatedPolicy.
        """
        _require_validated(new_policy)
        old_policy, _ = self._active
        self._active = (new_policy, _Stages.from_policy(new_policy))
        return {
            "old_rules_count": len(old_policy.rules),
            "new_rules_count": len(new_policy.rules),
            "old_checksum": old_policy.checksum,
            "new_checksum": new_policy.checksum,
        }

    def _stages_for(self, policy: ValidatedPolicy | None) -> _Stages:
        active_policy, stages = self._active
        if policy is None or policy is active_policy:
            return stages
        _require_validated(policy)
        return _Stages.from_policy(policy)

    def _evaluate(self, stages: _Stages, request: RequestContext) -> Decision:
        for rid, deny in stages.deny:
            value = request.attribute(deny.field)
            if value is not None and matching_patterns(deny.values, value):
                return Deny(REASON_DENYLISTED, rule_id=rid)

        matched: dict[str, str] = {}
        for name, group in stages.allow.items():
            value = request.attribute(name)
            if value is None:
                continue
            best = most_specific_match(group.patterns, value)
            if best is None:
                return Deny(REASON_NOT_IN_ALLOWLIST, rule_id=group.rule_id)
            matched[name] = best

        subject = request.subject_key
        now = request.timestamp

        for rid, limit in stages.rate:
            view = self._state.rate_window(StateKey(rid, subject), now, limit.window_seconds)
            if view.count >= limit.max_requests:
                oldest = view.oldest if view.oldest is not None else now
                retry_after = max(MIN_RETRY_AFTER_SECONDS, math.ceil(oldest + limit.window_seconds - now))
                return RateLimited(retry_after, rule_id=rid)

        if stages.spend:
            cost = to_decimal(request.estimated_cost)
            for rid, cap in stages.spend:
                current = self._state.spending_window(StateKey(rid, subject), now, cap.window_seconds)
                limit_amount = to_decimal(cap.max_amount)
                if current + cost > limit_amount:
                    remaining = max(limit_amount - current, Decimal("0"))
                    return SpendingCapExceeded(
                        current=float(current),
                        limit=float(limit_amount),
                        remaining=float(remaining),
                        currency=cap.currency,
                        rule_id=rid,
                    )

        return Allow(matched_patterns=matched)


def _require_validated(policy: Any) -> None:
    if not isinstance(policy, ValidatedPolicy):
        raise PolicyContractError(
            f"PolicyEngine requires a ValidatedPolicy (from validate_policy()), got {type(policy).__name__}"
        )
