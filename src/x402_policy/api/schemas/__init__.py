"""API request/response schemas."""

from x402_policy.api.schemas.policy import (
    EvaluateRequest,
    EvaluateResponse,
    PolicyResponse,
    PolicyRuleResponse,
)

__all__ = [
    "EvaluateRequest",
    "EvaluateResponse",
    "PolicyResponse",
    "PolicyRuleResponse",
]
