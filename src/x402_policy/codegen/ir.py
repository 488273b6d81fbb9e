"""Intermediate representation for middleware generation.

The IR is the ordered list of (stage, rule) pairs the generated middleware
walks, sorted by stage precedence and then by rule index. Renderers only
read the IR; they never look at the policy directly, so a new target is a
new renderer over the same IR.
"""

from __future__ import annotations

__all__ = [
    "IRStep",
    "MiddlewareIR",
    "Stage",
    "build_ir",
    "to_json_literal",
]

import json
from dataclasses import dataclass
from enum import IntEnum
from typing import Any

from x402_policy.pdp.policy import (
    AllowlistRule,
    AuditConfig,
    DenylistRule,
    PricingConfig,
    RateLimitRule,
    SpendingCapRule,
)
from x402_policy.pdp.validator import ValidatedPolicy


class Stage(IntEnum):
    """Evaluation stages in precedence order."""

    DENYLIST = 1
    ALLOWLIST = 2
    RATE_LIMIT = 3
    SPENDING_CAP = 4


_STAGE_BY_RULE: dict[type, Stage] = {
    DenylistRule: Stage.DENYLIST,
    AllowlistRule: Stage.ALLOWLIST,
    RateLimitRule: Stage.RATE_LIMIT,
    SpendingCapRule: Stage.SPENDING_CAP,
}


def to_json_literal(value: Any) -> str:
    """Single-line, key-sorted JSON. Valid as a JS and (for rule data) Python literal."""
    return json.dumps(value, sort_keys=True, separators=(", ", ": "), allow_nan=False)


@dataclass(frozen=True)
class IRStep:
    """One rule placed at its stage.

    Attributes:
        stage: Evaluation stage.
        index: Position of the rule in the policy document.
        rule_id: Stable id ("rule_<index>").
        rule: The rule model.
    """

    stage: Stage
    index: int
    rule_id: str
    rule: Any


@dataclass(frozen=True)
class MiddlewareIR:
    """Everything a renderer needs.

    Attributes:
        steps: (stage, rule) pairs sorted by stage then index.
        rules: Rule dicts in document order (the embedded rule set).
        pricing: Pricing section.
        audit: Audit section.
        checksum: Checksum of the validated policy.
        version: Policy format version.
        source_name: Name of the policy file, for the header comment.
    """

    steps: tuple[IRStep, ...]
    rules: tuple[dict[str, Any], ...]
    pricing: PricingConfig
    audit: AuditConfig
    checksum: str
    version: str
    source_name: str | None = None

    def indices(self, stage: Stage) -> list[int]:
        """Rule indices of one stage, in evaluation order."""
        return [step.index for step in self.steps if step.stage is stage]

    def stage_plan(self) -> dict[str, list[int]]:
        """Stage name -> rule indices, in precedence order."""
        return {stage.name.lower(): self.indices(stage) for stage in Stage}

    @property
    def rules_literal(self) -> str:
        return to_json_literal(list(self.rules))

    @property
    def stage_plan_literal(self) -> str:
        return json.dumps(self.stage_plan(), separators=(", ", ": "))

    @property
    def pricing_literal(self) -> str:
        return to_json_literal(self.pricing.model_dump(mode="json"))

    @property
    def audit_literal(self) -> str:
        return to_json_literal(self.audit.model_dump(mode="json"))


def build_ir(policy: ValidatedPolicy) -> MiddlewareIR:
    """Lower a ValidatedPolicy to the middleware IR.

    Args:
        policy: Policy returned by validate_policy().

    Returns:
        MiddlewareIR with steps sorted by (stage, index).
    """
    steps = [
        IRStep(stage=_STAGE_BY_RULE[type(rule)], index=idx, rule_id=rid, rule=rule)
        for idx, rid, rule in policy.iter_rules()
    ]
    steps.sort(key=lambda step: (step.stage, step.index))

    return MiddlewareIR(
        steps=tuple(steps),
        rules=tuple(rule.model_dump(mode="json") for rule in policy.rules),
        pricing=policy.pricing,
        audit=policy.audit,
        checksum=policy.checksum,
        version=policy.version,
    )
