"""Pydantic models for log events."""

from x402_policy.telemetry.models.decision import DecisionEvent

__all__ = ["DecisionEvent"]
