"""Policy Decision Point (PDP) - parse, validate and evaluate policies.

- context/: Builds RequestContext from requests
- pdp/ (this module): Turns policy text into decisions
- pep/: Enforces decisions (middleware) and commits usage
- codegen/: Emits standalone middleware for other frameworks

Everything here is free of I/O. The only mutable state is the StateStore,
which the engine owner creates and passes in.

Structure:
    policy.py         - Policy models (PolicyConfig, Rule variants)
    parser.py         - Text/dict -> PolicyConfig (fail-fast)
    validator.py      - PolicyConfig -> ValidatedPolicy (fail-slow)
    matcher.py        - Literal and trailing-wildcard pattern matching
    pricing.py        - Route price resolution
    state.py          - StateStore for rate and spending windows
    decision.py       - Decision variants
    engine.py         - PolicyEngine for evaluation and commit

Policy file I/O is in utils/policy/policy_helpers.py.
"""

from x402_policy.pdp.decision import (
    Allow,
    Decision,
    DecisionKind,
    Deny,
    RateLimited,
    SpendingCapExceeded,
)
from x402_policy.pdp.engine import PolicyEngine
from x402_policy.pdp.parser import parse_policy, parse_policy_data
from x402_policy.pdp.policy import (
    AllowlistRule,
    AuditConfig,
    DenylistRule,
    PolicyConfig,
    PricingConfig,
    RateLimitRule,
    Rule,
    SpendingCapRule,
)
from x402_policy.pdp.state import StateKey, StateStore
from x402_policy.pdp.validator import (
    Severity,
    ValidatedPolicy,
    ValidationIssue,
    ValidationReport,
    check_policy,
    validate_policy,
)

__all__ = [
    # Decisions
    "Decision",
    "DecisionKind",
    "Allow",
    "Deny",
    "RateLimited",
    "SpendingCapExceeded",
    # Engine
    "PolicyEngine",
    "StateKey",
    "StateStore",
    # Parsing
    "parse_policy",
    "parse_policy_data",
    # Validation
    "Severity",
    "ValidatedPolicy",
    "ValidationIssue",
    "ValidationReport",
    "check_policy",
    "validate_policy",
    # Policy models
    "PolicyConfig",
    "Rule",
    "AllowlistRule",
    "DenylistRule",
    "RateLimitRule",
    "SpendingCapRule",
    "PricingConfig",
    "AuditConfig",
]
