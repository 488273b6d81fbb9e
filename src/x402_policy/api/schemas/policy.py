"""Policy API schemas."""

from __future__ import annotations

__all__ = [
    "EvaluateRequest",
    "EvaluateResponse",
    "PolicyResponse",
    "PolicyRuleResponse",
]

from typing import Any

from pydantic import BaseModel, Field


class PolicyRuleResponse(BaseModel):
    """Single policy rule for API response."""

    id: str
    type: str
    definition: dict[str, Any]


class PolicyResponse(BaseModel):
    """Active policy with metadata."""

    version: str
    checksum: str
    rules_count: int
    rules: list[PolicyRuleResponse]
    pricing: dict[str, Any]
    audit: dict[str, Any]
    warnings: list[str]


class EvaluateRequest(BaseModel):
    """Request body for a dry-run evaluation."""

    agent_id: str | None = None
    wallet_address: str | None = None
    ip_address: str | None = None
    estimated_cost: float = Field(default=0.0, ge=0, allow_inf_nan=False)
    timestamp: float | None = None
    path: str | None = None


class EvaluateResponse(BaseModel):
    """Result of a dry-run evaluation (state is not committed)."""

    subject_key: str
    decision: dict[str, Any]
    policy_checksum: str
