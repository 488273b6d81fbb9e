"""Decision audit event model (audit/decisions.jsonl)."""

from __future__ import annotations

__all__ = ["DecisionEvent"]

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class DecisionEvent(BaseModel):
    """
    One policy decision log entry.

    Carries the same fields as the audit hook of generated middleware
    (subject key, rule id, decision, amount, timestamp) plus request and
    policy context for forensics.
    """

    # --- core ---
    time: Optional[str] = Field(
        None,
        description="ISO 8601 timestamp, added by formatter during serialization",
    )
    event: Literal["policy_decision"] = "policy_decision"

    # --- decision outcome ---
    decision: Literal["allow", "deny", "rate_limited", "spending_cap_exceeded"]
    reason: Optional[str] = None
    rule_id: Optional[str] = None  # None when every rule passed
    retry_after: Optional[int] = None  # rate_limited only

    # --- request summary ---
    subject_key: str
    amount: float  # estimated cost of the request
    timestamp: float  # request time (unix seconds) used for evaluation
    path: Optional[str] = None
    method: Optional[str] = None

    # --- policy ---
    policy_checksum: str

    # --- performance ---
    policy_eval_ms: float

    model_config = ConfigDict(extra="forbid")
