"""Tests for the management API routes.

Tests use the AAA pattern (Arrange-Act-Assert) for clarity.
"""

from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from x402_policy.api.server import create_api_app
from x402_policy.context import RequestContext
from x402_policy.pdp import PolicyEngine
from x402_policy.pep.reloader import PolicyReloader
from x402_policy.utils.policy import load_validated_policy

WARNING_POLICY_YAML = """
policies:
  - type: allowlist
    field: agent_id
    values: ["agent-1", "agent-1"]
  - type: rate_limit
    max_requests: 1
    window_seconds: 60
"""


@pytest.fixture
def policy_path(write_policy):
    return write_policy(WARNING_POLICY_YAML)


@pytest.fixture
def engine(policy_path):
    return PolicyEngine(load_validated_policy(policy_path))


@pytest.fixture
def reloader(engine, policy_path):
    return PolicyReloader(engine, MagicMock(), policy_path)


@pytest.fixture
def client(engine, reloader):
    return TestClient(create_api_app(engine, reloader=reloader))


# =============================================================================
# Tests: /api/policy
# =============================================================================


class TestPolicyRoutes:
    """Tests for GET /api/policy and POST /api/policy/evaluate."""

    def test_get_policy(self, client, engine):
        # Act
        response = client.get("/api/policy")

        # Assert
        assert response.status_code == 200
        body = response.json()
        assert body["checksum"] == engine.policy.checksum
        assert body["rules_count"] == 2
        assert body["rules"][0] == {
            "id": "rule_0",
            "type": "allowlist",
            "definition": {"field": "agent_id", "values": ["agent-1", "agent-1"]},
        }
        assert body["pricing"]["currency"] == "USDC"
        assert len(body["warnings"]) == 1

    def test_evaluate_allow(self, client):
        # Act
        response = client.post("/api/policy/evaluate", json={"agent_id": "agent-1", "timestamp": 1000})

        # Assert
        assert response.status_code == 200
        body = response.json()
        assert body["subject_key"] == "agent_id:agent-1"
        assert body["decision"]["decision"] == "allow"

    def test_evaluate_not_in_allowlist(self, client):
        response = client.post("/api/policy/evaluate", json={"agent_id": "other"})

        assert response.json()["decision"] == {
            "allowed": False,
            "decision": "deny",
            "reason": "not in allowlist",
            "rule_id": "rule_0",
        }

    def test_evaluate_is_dry_run(self, client, engine):
        # Act
        for _ in range(3):
            response = client.post("/api/policy/evaluate", json={"agent_id": "agent-1", "timestamp": 1000})

        # Assert
        assert response.json()["decision"]["allowed"] is True
        assert len(engine.state_store) == 0

    def test_evaluate_sees_committed_state(self, client, engine):
        # Arrange
        engine.commit(RequestContext(agent_id="agent-1", timestamp=1000.0))

        # Act
        response = client.post("/api/policy/evaluate", json={"agent_id": "agent-1", "timestamp": 1010})

        # Assert
        assert response.json()["decision"]["decision"] == "rate_limited"
        assert response.json()["decision"]["retry_after"] == 50

    def test_evaluate_rejects_negative_cost(self, client):
        response = client.post("/api/policy/evaluate", json={"estimated_cost": -1})

        assert response.status_code == 422


# =============================================================================
# Tests: /api/control
# =============================================================================


class TestControlRoutes:
    """Tests for GET /status and POST /reload-policy."""

    def test_status(self, client, engine):
        # Act
        response = client.get("/api/control/status")

        # Assert
        body = response.json()
        assert body["running"] is True
        assert body["policy_checksum"] == engine.policy.checksum
        assert body["policy_rules_count"] == 2
        assert body["reload_count"] == 0
        assert body["last_reload_at"] is None
        assert body["state_entries"] == 0

    def test_reload_empty_policy_is_rejected(self, client, policy_path):
        # Arrange
        policy_path.write_text("policies: []\n", encoding="utf-8")

        # Act
        response = client.post("/api/control/reload-policy")

        # Assert
        body = response.json()
        assert body["status"] == "validation_error"
        assert body["old_rules_count"] == body["new_rules_count"] == 2

    def test_reload_then_status(self, client, policy_path):
        # Arrange
        policy_path.write_text(
            "policies:\n  - type: denylist\n    field: ip_address\n    values: ['10.*']\n", encoding="utf-8"
        )

        # Act
        reload_body = client.post("/api/control/reload-policy").json()
        status_body = client.get("/api/control/status").json()

        # Assert
        assert reload_body["status"] == "success"
        assert reload_body["new_rules_count"] == 1
        assert status_body["policy_rules_count"] == 1
        assert status_body["reload_count"] == 1
        assert status_body["policy_checksum"] == reload_body["policy_checksum"]

    def test_control_routes_need_reloader(self, engine):
        # Arrange
        client = TestClient(create_api_app(engine))

        # Act / Assert
        assert client.get("/api/control/status").status_code == 503
        assert client.post("/api/control/reload-policy").status_code == 503
        assert client.get("/api/policy").status_code == 200
