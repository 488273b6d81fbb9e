"""FastAPI / Starlette renderer.

Emits a standalone Python module with an ``X402PolicyMiddleware``
(``BaseHTTPMiddleware``) that depends only on starlette. The embedded
constants are JSON strings decoded with ``json.loads`` at import time.
"""

from __future__ import annotations

__all__ = ["render"]

from x402_policy.codegen.ir import MiddlewareIR
from x402_policy.codegen.renderers.base import fill, header_values
from x402_policy.constants import COST_HEADER_PATTERN

_TEMPLATE = r'''"""x402 policy middleware for FastAPI / Starlette.

Generated by x402-policy %TOOL_VERSION% from %SOURCE%. Do not edit.
Policy version: %VERSION%
Policy checksum: %CHECKSUM%

Usage:
    app.add_middleware(X402PolicyMiddleware, audit_hook=my_hook)

The audit hook is called as hook(subject_key, rule_id, decision, amount, timestamp).
"""

from __future__ import annotations

import bisect
import json
import math
import re
import sys
import threading
import time
from decimal import Decimal
from typing import Any, Callable, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

POLICY_RULES = json.loads(%RULES%)
STAGES = json.loads(%STAGES%)
PRICING = json.loads(%PRICING%)
AUDIT = json.loads(%AUDIT%)

LIST_FIELDS = ("agent_id", "wallet_address", "ip_address")
COST_RE = re.compile(r"%COST_PATTERN%")

AuditHook = Callable[[str, Optional[str], str, float, float], None]


def rule_id(index: int) -> str:
    return f"rule_{index}"


def match_pattern(pattern: str, value: str) -> bool:
    if pattern.endswith("*"):
        return value.startswith(pattern[:-1])
    return pattern == value


def most_specific_match(patterns: list[str], value: str) -> Optional[str]:
    best = None
    best_key = None
    for pattern in patterns:
        if not match_pattern(pattern, value):
            continue
        exact = not pattern.endswith("*")
        key = (len(pattern) if exact else len(pattern) - 1, exact)
        if best_key is None or key > best_key:
            best, best_key = pattern, key
    return best


def _allow_groups() -> dict[str, tuple[str, list[str]]]:
    groups: dict[str, tuple[str, list[str]]] = {}
    for index in STAGES["allowlist"]:
        rule = POLICY_RULES[index]
        groups.setdefault(rule["field"], (rule_id(index), []))[1].extend(rule["values"])
    return groups


ALLOW_GROUPS = _allow_groups()


def subject_key(ctx: dict[str, Any]) -> str:
    for field in LIST_FIELDS:
        if ctx.get(field):
            return f"{field}:{ctx[field]}"
    return "anonymous"


def resolve_price(path: Optional[str]) -> float:
    routes = PRICING["routes"]
    best = most_specific_match(list(routes), path) if path and routes else None
    return PRICING["amount"] if best is None else routes[best]


class PolicyStateStore:
    """Rate and spending windows. One lock serialises every read-modify-write."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._rate: dict[str, list[float]] = {}
        self._spending: dict[str, list[Any]] = {}

    def rate_window(self, key: str, now: float, window: int) -> tuple[int, Optional[float]]:
        with self._lock:
            instants = self._rate.get(key, [])
            lo = bisect.bisect_left(instants, now - window)
            hi = bisect.bisect_right(instants, now)
            if hi <= lo:
                return 0, None
            return hi - lo, instants[lo]

    def record_request(self, key: str, now: float, window: int) -> None:
        with self._lock:
            instants = self._rate.setdefault(key, [])
            del instants[: bisect.bisect_left(instants, now - window)]
            bisect.insort(instants, now)

    def spending_window(self, key: str, now: float, window: int) -> Decimal:
        with self._lock:
            entry = self._spending.get(key)
            if entry is None or now - entry[1] > window:
                return Decimal("0")
            return entry[0]

    def record_spend(self, key: str, amount: Decimal, now: float, window: int) -> None:
        with self._lock:
            entry = self._spending.get(key)
            if entry is None or now - entry[1] > window:
                entry = self._spending[key] = [Decimal("0"), now]
            entry[0] += amount


def evaluate(ctx: dict[str, Any], store: PolicyStateStore) -> dict[str, Any]:
    """Read-only: deny -> allowlist -> rate limit -> spending cap -> allow."""
    now = ctx["timestamp"]

    for index in STAGES["denylist"]:
        rule = POLICY_RULES[index]
        value = ctx.get(rule["field"])
        if value and any(match_pattern(p, value) for p in rule["values"]):
            return {"allowed": False, "decision": "deny", "reason": "denylisted", "rule_id": rule_id(index)}

    matched: dict[str, str] = {}
    for field, (group_id, patterns) in ALLOW_GROUPS.items():
        value = ctx.get(field)
        if not value:
            continue
        best = most_specific_match(patterns, value)
        if best is None:
            return {"allowed": False, "decision": "deny", "reason": "not in allowlist", "rule_id": group_id}
        matched[field] = best

    subject = subject_key(ctx)

    for index in STAGES["rate_limit"]:
        rule = POLICY_RULES[index]
        count, oldest = store.rate_window(f"{rule_id(index)}|{subject}", now, rule["window_seconds"])
        if count >= rule["max_requests"]:
            oldest = now if oldest is None else oldest
            return {
                "allowed": False,
                "decision": "rate_limited",
                "reason": "rate limit exceeded",
                "retry_after": max(1, math.ceil(oldest + rule["window_seconds"] - now)),
                "rule_id": rule_id(index),
            }

    cost = Decimal(str(ctx["estimated_cost"]))
    for index in STAGES["spending_cap"]:
        rule = POLICY_RULES[index]
        current = store.spending_window(f"{rule_id(index)}|{subject}", now, rule["window_seconds"])
        limit = Decimal(str(rule["max_amount"]))
        if current + cost > limit:
            return {
                "allowed": False,
                "decision": "spending_cap_exceeded",
                "reason": "spending cap exceeded",
                "spending": {
                    "current": float(current),
                    "limit": float(limit),
                    "remaining": float(max(limit - current, Decimal("0"))),
                    "currency": rule["currency"],
                },
                "rule_id": rule_id(index),
            }

    return {"allowed": True, "decision": "allow", "reason": None, "matched_patterns": matched}


def commit(ctx: dict[str, Any], store: PolicyStateStore) -> None:
    """Record usage. Call only after the protected handler succeeded."""
    subject = subject_key(ctx)
    for index in STAGES["rate_limit"]:
        rule = POLICY_RULES[index]
        store.record_request(f"{rule_id(index)}|{subject}", ctx["timestamp"], rule["window_seconds"])
    cost = Decimal(str(ctx["estimated_cost"]))
    for index in STAGES["spending_cap"]:
        rule = POLICY_RULES[index]
        store.record_spend(f"{rule_id(index)}|{subject}", cost, ctx["timestamp"], rule["window_seconds"])


def default_audit_hook(subject: str, rule: Optional[str], decision: str, amount: float, timestamp: float) -> None:
    if not AUDIT["enabled"] or not AUDIT["destination"]:
        return
    if AUDIT["format"] == "csv":
        fields = ["" if v is None else str(v) for v in (timestamp, subject, rule, decision, amount)]
        line = ",".join('"' + f.replace('"', '""') + '"' if any(c in f for c in ',"\n') else f for f in fields)
    else:
        line = json.dumps(
            {"timestamp": timestamp, "subject_key": subject, "rule_id": rule, "decision": decision, "amount": amount}
        )
    if AUDIT["destination"] == "stdout":
        sys.stdout.write(line + "\n")
    else:
        with open(AUDIT["destination"], "a", encoding="utf-8") as f:
            f.write(line + "\n")


def build_context(request: Request) -> Optional[dict[str, Any]]:
    """Context for evaluation, or None if the cost header is invalid."""
    raw_cost = request.headers.get("x-402-estimated-cost")
    path = request.url.path
    if raw_cost is not None and not COST_RE.fullmatch(raw_cost):
        return None
    cost = resolve_price(path) if raw_cost is None else float(raw_cost)
    if not math.isfinite(cost) or cost < 0:
        return None
    return {
        "agent_id": request.headers.get("x-agent-id") or None,
        "wallet_address": request.headers.get("x-wallet-address") or None,
        "ip_address": request.client.host if request.client else None,
        "estimated_cost": cost,
        "timestamp": time.time(),
        "path": path,
    }


def rejection_response(decision: dict[str, Any], ctx: dict[str, Any]) -> Response:
    if decision["decision"] == "rate_limited":
        return JSONResponse(decision, status_code=429, headers={"Retry-After": str(decision["retry_after"])})
    if decision["decision"] == "spending_cap_exceeded":
        memo = f"{PRICING['memo_prefix']}{subject_key(ctx)}" if PRICING["memo_prefix"] else None
        body = dict(decision, payment={"amount": ctx["estimated_cost"], "currency": PRICING["currency"], "memo": memo})
        return JSONResponse(body, status_code=402)
    return JSONResponse(decision, status_code=403)


class X402PolicyMiddleware(BaseHTTPMiddleware):
    """Evaluate every request; commit usage when the response status is below 400."""

    def __init__(self, app: Any, store: Optional[PolicyStateStore] = None, audit_hook: Optional[AuditHook] = None):
        super().__init__(app)
        self.store = store or PolicyStateStore()
        self.audit_hook = audit_hook or default_audit_hook

    async def dispatch(self, request: Request, call_next: Any) -> Response:
        ctx = build_context(request)
        if ctx is None:
            return JSONResponse({"error": "invalid x-402-estimated-cost header"}, status_code=400)

        decision = evaluate(ctx, self.store)
        self.audit_hook(subject_key(ctx), decision.get("rule_id"), decision["decision"], ctx["estimated_cost"], ctx["timestamp"])
        if not decision["allowed"]:
            return rejection_response(decision, ctx)

        response = await call_next(request)
        if response.status_code < 400:
            commit(ctx, self.store)
        return response
'''


def render(ir: MiddlewareIR) -> str:
    """Render the Starlette middleware module for ``ir``."""
    values = header_values(ir)
    values["COST_PATTERN"] = COST_HEADER_PATTERN
    # repr() of the JSON text is a valid Python string literal on one line
    values.update(
        RULES=repr(ir.rules_literal),
        STAGES=repr(ir.stage_plan_literal),
        PRICING=repr(ir.pricing_literal),
        AUDIT=repr(ir.audit_literal),
    )
    return fill(_TEMPLATE, **values)
