"""Policy models for access and spending enforcement.

This module defines the policy schema consumed by the parser, validator,
engine and code generator. Rules are a closed tagged union on ``type``;
anything else is rejected at parse time instead of being interpreted ad hoc
during evaluation.

Policy structure:
    PolicyConfig
    ├── version: Format version of the policy file
    ├── policies: List[Rule]            (order kept for audit only)
    │   ├── AllowlistRule   {field, values}
    │   ├── DenylistRule    {field, values}
    │   ├── RateLimitRule   {max_requests, window_seconds}
    │   └── SpendingCapRule {max_amount, currency, window_seconds}
    ├── pricing: PricingConfig          (price of a protected call)
    └── audit: AuditConfig              (audit sink for generated code)

Design principles:
1. Strict typing: no silent coercion of strings to numbers or floats to ints
2. Unknown fields are errors, not ignored
3. Bounds and cross-rule consistency are the validator's job, not the model's
4. Models are frozen; a loaded policy never changes in place
"""

from __future__ import annotations

__all__ = [
    "AllowlistRule",
    "AuditConfig",
    "DenylistRule",
    "ListField",
    "ListRule",
    "PolicyConfig",
    "PricingConfig",
    "RateLimitRule",
    "Rule",
    "SpendingCapRule",
    "rule_id",
]

from typing import Annotated, Any, Iterator, Literal, Union

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator
from pydantic_core import PydanticCustomError

from x402_policy.constants import (
    DEFAULT_AUDIT_DESTINATION,
    DEFAULT_POLICY_VERSION,
    DEFAULT_PRICE_AMOUNT,
    DEFAULT_PRICE_CURRENCY,
)

ListField = Literal["agent_id", "wallet_address", "ip_address"]

_FROZEN = ConfigDict(frozen=True, extra="forbid")


# Type guards applied before pydantic validation so that "5", 5.0 or True are
# rejected where an integer is required, instead of being coerced.


def _strict_int(value: Any) -> Any:
    if isinstance(value, bool) or not isinstance(value, int):
        raise PydanticCustomError("int_type", "Input should be a valid integer")
    return value


def _strict_number(value: Any) -> Any:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise PydanticCustomError("float_type", "Input should be a valid number")
    try:
        return float(value)
    except OverflowError:
        raise PydanticCustomError("float_type", "Input should be a number within float range") from None


def _strict_str(value: Any) -> Any:
    if not isinstance(value, str):
        raise PydanticCustomError("string_type", "Input should be a valid string")
    return value


def _strict_bool(value: Any) -> Any:
    if not isinstance(value, bool):
        raise PydanticCustomError("bool_type", "Input should be a valid boolean")
    return value


StrictInteger = Annotated[int, BeforeValidator(_strict_int)]
Number = Annotated[float, BeforeValidator(_strict_number)]
Text = Annotated[str, BeforeValidator(_strict_str)]
Flag = Annotated[bool, BeforeValidator(_strict_bool)]


def rule_id(index: int) -> str:
    """Stable identifier of the rule at ``index`` in ``policies``."""
    return f"rule_{index}"


class AllowlistRule(BaseModel):
    """Only listed values may pass for ``field``.

    Attributes:
        field: Request attribute the list applies to.
        values: Literal values or trailing-wildcard patterns ("agent-*").
    """

    type: Literal["allowlist"] = "allowlist"
    field: ListField
    values: list[Text]

    model_config = _FROZEN


class DenylistRule(BaseModel):
    """Listed values are always rejected for ``field``. Deny beats allow."""

    type: Literal["denylist"] = "denylist"
    field: ListField
    values: list[Text]

    model_config = _FROZEN


class RateLimitRule(BaseModel):
    """Sliding window limit: at most ``max_requests`` per ``window_seconds``."""

    type: Literal["rate_limit"] = "rate_limit"
    max_requests: StrictInteger
    window_seconds: StrictInteger

    model_config = _FROZEN


class SpendingCapRule(BaseModel):
    """Fixed accounting window: at most ``max_amount`` spent per window."""

    type: Literal["spending_cap"] = "spending_cap"
    max_amount: Number
    currency: Text
    window_seconds: StrictInteger

    model_config = _FROZEN


Rule = Annotated[
    Union[AllowlistRule, DenylistRule, RateLimitRule, SpendingCapRule],
    Field(discriminator="type"),
]

ListRule = Union[AllowlistRule, DenylistRule]


class PricingConfig(BaseModel):
    """Price of a protected call.

    Attributes:
        amount: Default price when no route pattern matches.
        currency: Currency of ``amount`` and of route prices.
        memo_prefix: Optional prefix for payment memos in 402 responses.
        routes: Path pattern -> price. The most specific matching pattern
            (longest literal prefix) decides.
    """

    amount: Number = DEFAULT_PRICE_AMOUNT
    currency: Text = DEFAULT_PRICE_CURRENCY
    memo_prefix: Text | None = None
    routes: dict[Text, Number] = Field(default_factory=dict)

    model_config = _FROZEN


class AuditConfig(BaseModel):
    """Audit sink for enforcement decisions.

    Attributes:
        enabled: Whether decisions are emitted at all.
        format: "json" (one object per line) or "csv".
        destination: "stdout", a file path, or None for the hook only.
    """

    enabled: Flag = True
    format: Literal["json", "csv"] = "json"
    destination: Text | None = DEFAULT_AUDIT_DESTINATION

    model_config = _FROZEN


class PolicyConfig(BaseModel):
    """Complete policy document.

    Attributes:
        version: Policy file format version.
        policies: Ordered rules. Order is preserved for auditability and rule
            ids; it does not change evaluation precedence.
        pricing: Pricing configuration.
        audit: Audit configuration.
    """

    version: str = DEFAULT_POLICY_VERSION
    policies: list[Rule]
    pricing: PricingConfig = Field(default_factory=PricingConfig)
    audit: AuditConfig = Field(default_factory=AuditConfig)

    model_config = _FROZEN

    @field_validator("version", mode="before")
    @classmethod
    def normalize_version(cls, value: Any) -> Any:
        """Accept unquoted YAML versions (``version: 1.0``) as strings."""
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    def iter_rules(self) -> Iterator[tuple[int, str, Any]]:
        """Yield (index, rule_id, rule) in document order."""
        for idx, rule in enumerate(self.policies):
            yield idx, rule_id(idx), rule
