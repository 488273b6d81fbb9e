"""Shared fixtures for x402-policy tests."""

from __future__ import annotations

import textwrap
from pathlib import Path
from typing import Callable

import pytest

from x402_policy.pdp import PolicyEngine, StateStore, ValidatedPolicy, parse_policy, validate_policy

# =============================================================================
# Policy documents
# =============================================================================

DENY_AND_RATE_LIMIT_YAML = """
version: "1.0"
policies:
  - type: denylist
    field: agent_id
    values: ["bad"]
  - type: rate_limit
    max_requests: 2
    window_seconds: 60
"""

SPENDING_CAP_YAML = """
version: "1.0"
policies:
  - type: spending_cap
    max_amount: 10.00
    currency: USDC
    window_seconds: 86400
"""

FULL_POLICY_YAML = """
version: "1.0"
policies:
  - type: allowlist
    field: agent_id
    values: ["agent-*", "vip-1"]
  - type: denylist
    field: agent_id
    values: ["agent-evil*"]
  - type: rate_limit
    max_requests: 100
    window_seconds: 3600
  - type: spending_cap
    max_amount: 50
    currency: USDC
    window_seconds: 86400
pricing:
  amount: 0.01
  currency: USDC
  memo_prefix: "x402:"
  routes:
    "/api/*": 0.05
    "/api/premium/*": 1.5
audit:
  enabled: false
  format: json
  destination: null
"""


def load(text: str) -> ValidatedPolicy:
    """Parse and validate a YAML policy."""
    return validate_policy(parse_policy(textwrap.dedent(text)))


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def make_policy() -> Callable[[str], ValidatedPolicy]:
    """Parse and validate YAML text."""
    return load


@pytest.fixture
def full_policy() -> ValidatedPolicy:
    return load(FULL_POLICY_YAML)


@pytest.fixture
def store() -> StateStore:
    return StateStore()


@pytest.fixture
def deny_rate_engine(store: StateStore) -> PolicyEngine:
    """Engine for: denylist agent_id=["bad"], rate_limit 2/60s."""
    return PolicyEngine(load(DENY_AND_RATE_LIMIT_YAML), state_store=store)


@pytest.fixture
def spending_engine(store: StateStore) -> PolicyEngine:
    """Engine for: spending_cap 10.00 USDC / 86400s."""
    return PolicyEngine(load(SPENDING_CAP_YAML), state_store=store)


@pytest.fixture
def write_policy(tmp_path: Path) -> Callable[[str, str], Path]:
    """Write policy text to a file under tmp_path."""

    def _write(text: str, name: str = "policy.yaml") -> Path:
        path = tmp_path / name
        path.write_text(textwrap.dedent(text), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def full_policy_file(write_policy: Callable[[str, str], Path]) -> Path:
    """FULL_POLICY_YAML written to tmp_path/policy.yaml."""
    return write_policy(FULL_POLICY_YAML)
