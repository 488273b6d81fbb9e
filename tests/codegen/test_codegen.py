"""Unit tests for middleware code generation.

Tests use the AAA pattern (Arrange-Act-Assert) for clarity.
"""

import ast
import dataclasses
import json
import shutil
import subprocess
from unittest.mock import patch

import pytest
from starlette.applications import Starlette
from starlette.testclient import TestClient

from x402_policy.codegen import extract_embedded_rules, generate_middleware, supported_frameworks
from x402_policy.codegen.ir import Stage, build_ir
from x402_policy.codegen.renderers import RENDERERS
from x402_policy.codegen.renderers.base import fill, header_text
from x402_policy.context import RequestContext
from x402_policy.exceptions import (
    CodegenInvariantError,
    PolicyContractError,
    PolicyParseError,
    PolicyValidationError,
    UnsupportedFrameworkError,
)
from x402_policy.pdp import Severity, ValidationIssue, ValidationReport

FRAMEWORKS = ("express", "fastify", "fastapi")
T0 = 1_700_000_000.0


# =============================================================================
# Tests: IR
# =============================================================================


class TestBuildIR:
    """Tests for build_ir()."""

    def test_steps_sorted_by_stage_then_index(self, full_policy):
        # Act
        ir = build_ir(full_policy)

        # Assert
        assert [(s.stage, s.index) for s in ir.steps] == [
            (Stage.DENYLIST, 1),
            (Stage.ALLOWLIST, 0),
            (Stage.RATE_LIMIT, 2),
            (Stage.SPENDING_CAP, 3),
        ]

    def test_stage_plan(self, full_policy):
        ir = build_ir(full_policy)

        assert ir.stage_plan() == {"denylist": [1], "allowlist": [0], "rate_limit": [2], "spending_cap": [3]}

    def test_rules_keep_document_order(self, full_policy):
        ir = build_ir(full_policy)

        assert [r["type"] for r in ir.rules] == ["allowlist", "denylist", "rate_limit", "spending_cap"]

    def test_rules_literal_is_valid_json(self, full_policy):
        ir = build_ir(full_policy)

        assert json.loads(ir.rules_literal) == list(ir.rules)


# =============================================================================
# Tests: generate_middleware
# =============================================================================


class TestGenerateMiddleware:
    """Tests for generate_middleware()."""

    def test_supported_frameworks(self):
        assert supported_frameworks() == FRAMEWORKS

    @pytest.mark.parametrize("framework", FRAMEWORKS)
    def test_embedded_rules_round_trip(self, full_policy, framework):
        # Act
        source = generate_middleware(full_policy, framework)

        # Assert
        assert extract_embedded_rules(source) == list(full_policy.rules)

    @pytest.mark.parametrize("framework", FRAMEWORKS)
    def test_output_is_deterministic(self, make_policy, framework):
        # Arrange
        text = """
        policies:
          - type: denylist
            field: ip_address
            values: ["10.0.0.*"]
          - type: rate_limit
            max_requests: 5
            window_seconds: 10
        """

        # Act
        first = generate_middleware(make_policy(text), framework)
        second = generate_middleware(make_policy(text), framework)

        # Assert
        assert first == second

    @pytest.mark.parametrize("framework", FRAMEWORKS)
    def test_header_names_checksum_and_source(self, full_policy, framework):
        # Act
        source = generate_middleware(full_policy, framework, source_name="/etc/policies/prod.yaml")

        # Assert
        assert full_policy.checksum in source
        assert "from prod.yaml." in source
        assert "/etc/policies" not in source

    def test_framework_name_is_case_insensitive(self, full_policy):
        assert generate_middleware(full_policy, " Express ") == generate_middleware(full_policy, "express")

    def test_unsupported_framework(self, full_policy):
        # Act
        with pytest.raises(UnsupportedFrameworkError) as exc_info:
            generate_middleware(full_policy, "koa")

        # Assert
        assert "koa" in str(exc_info.value)

    def test_requires_validated_policy(self, full_policy):
        with pytest.raises(PolicyContractError):
            generate_middleware(full_policy.policy, "express")

    def test_revalidation_failure_is_an_invariant_error(self, full_policy):
        # Arrange
        report = ValidationReport([ValidationIssue(Severity.ERROR, "bounds", "window out of range")])

        # Act
        with patch(
            "x402_policy.codegen.generator.validate_policy", side_effect=PolicyValidationError(report)
        ):
            with pytest.raises(CodegenInvariantError, match="re-validation"):
                generate_middleware(full_policy, "express")

    def test_checksum_mismatch_is_an_invariant_error(self, full_policy, deny_rate_engine):
        # Act
        with patch("x402_policy.codegen.generator.validate_policy", return_value=deny_rate_engine.policy):
            with pytest.raises(CodegenInvariantError, match="checksum mismatch"):
                generate_middleware(full_policy, "fastapi")

    def test_express_exports_middleware_factory(self, full_policy):
        source = generate_middleware(full_policy, "express")

        assert "createPolicyMiddleware" in source
        assert "module.exports" in source
        assert "res.on('finish'" in source

    def test_fastify_registers_hooks(self, full_policy):
        source = generate_middleware(full_policy, "fastify")

        assert "onRequest" in source
        assert "onResponse" in source

    def test_fastapi_output_is_python(self, full_policy):
        # Act
        source = generate_middleware(full_policy, "fastapi")

        # Assert
        compile(source, "x402_policy_middleware.py", "exec")
        assert "class X402PolicyMiddleware(BaseHTTPMiddleware)" in source

    def test_no_placeholders_left(self, full_policy):
        for framework in FRAMEWORKS:
            source = generate_middleware(full_policy, framework)
            assert "%RULES%" not in source
            assert "%CHECKSUM%" not in source


# =============================================================================
# Tests: Generated decision logic
# =============================================================================


def _load_generated_python(source):
    namespace = {"__name__": "generated_x402_policy_middleware"}
    exec(compile(source, "x402_policy_middleware.py", "exec"), namespace)
    return namespace


def _summary(decision):
    return {key: decision.get(key) for key in ("allowed", "decision", "reason", "rule_id", "retry_after", "spending")}


# (agent_id, estimated_cost, seconds after T0)
DENY_AND_RATE_LIMIT_STEPS = [
    ("good", 0.0, 0.0),
    ("bad", 0.0, 1.0),
    ("good", 0.0, 4.0),
    ("good", 0.0, 9.0),
    ("good", 0.0, 61.5),
]
SPENDING_STEPS = [("good", 1.0, float(i)) for i in range(9)] + [
    ("good", 2.0, 10.0),
    ("good", 1.0, 11.0),
    ("good", 0.5, 12.0),
]


class TestGeneratedPythonDecisions:
    """The generated FastAPI module decides exactly like PolicyEngine."""

    @pytest.mark.parametrize(
        "engine_fixture,steps",
        [("deny_rate_engine", DENY_AND_RATE_LIMIT_STEPS), ("spending_engine", SPENDING_STEPS)],
    )
    def test_evaluate_and_commit_match_engine(self, request, engine_fixture, steps):
        # Arrange
        engine = request.getfixturevalue(engine_fixture)
        generated = _load_generated_python(generate_middleware(engine.policy, "fastapi"))
        store = generated["PolicyStateStore"]()

        # Act
        engine_decisions, generated_decisions = [], []
        for agent_id, cost, offset in steps:
            ctx = RequestContext(agent_id=agent_id, estimated_cost=cost, timestamp=T0 + offset)
            ctx_dict = {
                "agent_id": agent_id,
                "wallet_address": None,
                "ip_address": None,
                "estimated_cost": cost,
                "timestamp": T0 + offset,
            }
            engine_decision = engine.evaluate(ctx).to_dict()
            generated_decision = generated["evaluate"](ctx_dict, store)
            engine_decisions.append(_summary(engine_decision))
            generated_decisions.append(_summary(generated_decision))
            if engine_decision["allowed"]:
                engine.commit(ctx)
            if generated_decision["allowed"]:
                generated["commit"](ctx_dict, store)

        # Assert
        assert generated_decisions == engine_decisions
        assert {d["decision"] for d in engine_decisions} > {"allow"}

    def test_build_context_rejects_non_decimal_cost(self, full_policy):
        # Arrange
        generated = _load_generated_python(generate_middleware(full_policy, "fastapi"))
        app = Starlette()
        app.add_middleware(generated["X402PolicyMiddleware"], audit_hook=lambda *args: None)
        client = TestClient(app)

        # Act
        responses = [
            client.get("/", headers={"X-Agent-Id": "agent-1", "X-402-Estimated-Cost": raw}) for raw in ("", "0x10")
        ]

        # Assert
        assert [r.status_code for r in responses] == [400, 400]


# =============================================================================
# Tests: Templates and extraction
# =============================================================================


class TestFill:
    """Tests for fill()."""

    def test_replaces_placeholders(self):
        assert fill("a=%A%; b=%B_C%", A="1", B_C="2") == "a=1; b=2"

    def test_missing_value_raises(self):
        with pytest.raises(CodegenInvariantError):
            fill("x=%MISSING%")


HOSTILE_HEADER = "1.0 \"\"\" oops\nthrow new Error('injected') */ \\N{x}"


class TestHeaderText:
    """Header values cannot break out of comments or docstrings."""

    @pytest.fixture
    def hostile_ir(self, full_policy):
        return dataclasses.replace(build_ir(full_policy), version=HOSTILE_HEADER, source_name=HOSTILE_HEADER)

    def test_keeps_ordinary_values(self):
        value = "sha256:ab12 <inline policy> prod-v1.2_x.yaml"

        assert header_text(value) == value

    def test_replaces_quotes_newlines_and_comment_markers(self):
        assert header_text('a"b\nc*/\\') == "a_b_c_/_"

    def test_fastapi_output_compiles(self, hostile_ir):
        # Act
        source = RENDERERS["fastapi"](hostile_ir)

        # Assert
        docstring = ast.get_docstring(ast.parse(source))
        assert "Policy version: 1.0 ___ oops_throw new Error(_injected_) _/ _N_x_" in docstring

    @pytest.mark.parametrize("framework", ["express", "fastify"])
    def test_javascript_header_stays_in_comments(self, full_policy, hostile_ir, framework):
        # Act
        source = RENDERERS[framework](hostile_ir)

        # Assert
        injected = [line.lstrip() for line in source.splitlines() if "injected" in line]
        assert injected
        assert all(line.startswith(("//", "*")) for line in injected)
        assert source.count("*/") == RENDERERS[framework](build_ir(full_policy)).count("*/")

    @pytest.mark.skipif(shutil.which("node") is None, reason="node is not installed")
    @pytest.mark.parametrize("framework", ["express", "fastify"])
    def test_javascript_output_parses(self, hostile_ir, framework, tmp_path):
        # Arrange
        path = tmp_path / "x402-policy.js"
        path.write_text(RENDERERS[framework](hostile_ir), encoding="utf-8")

        # Act
        result = subprocess.run(["node", "--check", str(path)], capture_output=True, text=True)

        # Assert
        assert result.returncode == 0, result.stderr


class TestExtractEmbeddedRules:
    """Tests for extract_embedded_rules()."""

    def test_missing_constant(self):
        with pytest.raises(PolicyParseError):
            extract_embedded_rules("module.exports = {};")

    def test_malformed_json(self):
        with pytest.raises(PolicyParseError):
            extract_embedded_rules("const POLICY_RULES = [{broken];")

    def test_python_constant_must_be_string(self):
        with pytest.raises(PolicyParseError):
            extract_embedded_rules("POLICY_RULES = json.loads(42)")
