"""Policy file helpers."""

from x402_policy.utils.policy.policy_helpers import (
    load_policy_file,
    load_validated_policy,
)

__all__ = [
    "load_policy_file",
    "load_validated_policy",
]
