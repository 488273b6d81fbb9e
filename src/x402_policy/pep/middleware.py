"""Policy Enforcement Point (PEP) middleware.

Intercepts HTTP requests, evaluates policy, and enforces decisions:

    Allow                 → forward, commit usage if the response is < 400
    Deny                  → 403
    RateLimited           → 429 with Retry-After
    SpendingCapExceeded   → 402 with payment details

Logs every decision to audit/decisions.jsonl when a DecisionLogger is set.
Evaluation failures fail closed with a 500 and never reach the handler.
"""

from __future__ import annotations

__all__ = [
    "PolicyEnforcementMiddleware",
    "decision_response",
]

import time
from typing import TYPE_CHECKING, Iterable, NoReturn

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

from x402_policy.constants import (
    STATUS_FORBIDDEN,
    STATUS_PAYMENT_REQUIRED,
    STATUS_TOO_MANY_REQUESTS,
)
from x402_policy.context import RequestContext, build_request_context
from x402_policy.exceptions import InternalError
from x402_policy.pdp.decision import Allow, Decision, Deny, RateLimited, SpendingCapExceeded
from x402_policy.pdp.matcher import match_pattern
from x402_policy.telemetry.system.system_logger import get_system_logger

if TYPE_CHECKING:
    from x402_policy.pdp.engine import PolicyEngine
    from x402_policy.pdp.policy import PricingConfig
    from x402_policy.telemetry.audit.decision_logger import DecisionLogger

_system_logger = get_system_logger()


def _assert_never(value: NoReturn) -> NoReturn:
    """Assert that a code path is never reached.

    Raises:
        AssertionError: Always raised if this code is reached.
    """
    raise AssertionError(f"Unexpected value: {value!r}")


def decision_response(decision: Decision, request: RequestContext, pricing: "PricingConfig") -> Response:
    """Map a rejecting decision to its HTTP response.

    Args:
        decision: Non-Allow decision.
        request: The evaluated request (for the 402 payment details).
        pricing: Pricing section of the active policy.

    Returns:
        403 / 429 / 402 JSON response.
    """
    body = decision.to_dict()
    if isinstance(decision, Deny):
        return JSONResponse(body, status_code=STATUS_FORBIDDEN)
    if isinstance(decision, RateLimited):
        return JSONResponse(
            body,
            status_code=STATUS_TOO_MANY_REQUESTS,
            headers={"Retry-After": str(decision.retry_after_seconds)},
        )
    if isinstance(decision, SpendingCapExceeded):
        memo = f"{pricing.memo_prefix}{request.subject_key}" if pricing.memo_prefix else None
        body["payment"] = {"amount": request.estimated_cost, "currency": pricing.currency, "memo": memo}
        return JSONResponse(body, status_code=STATUS_PAYMENT_REQUIRED)
    if isinstance(decision, Allow):
        raise ValueError("Allow decisions have no rejection response")
    _assert_never(decision)


class PolicyEnforcementMiddleware(BaseHTTPMiddleware):
    """Middleware that enforces policy decisions on HTTP requests.

    Usage commits only after the downstream handler returned a response
    with status < 400, so rejected or failed calls are never charged.

    Usage:
        app.add_middleware(
            PolicyEnforcementMiddleware,
            engine=engine,
            decision_logger=create_decision_logger(log_path),
            exempt_paths=("/api/*",),
        )
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        engine: "PolicyEngine",
        decision_logger: "DecisionLogger | None" = None,
        exempt_paths: Iterable[str] = (),
    ) -> None:
        """Initialize enforcement middleware.

        Args:
            app: Wrapped ASGI app.
            engine: PolicyEngine holding the active policy and state.
            decision_logger: Audit logger for decisions (None disables it).
            exempt_paths: Path patterns (trailing "*" allowed) that bypass
                enforcement, e.g. the management API.
        """
        super().__init__(app)
        self._engine = engine
        self._decision_logger = decision_logger
        self._exempt_paths = tuple(exempt_paths)

    @property
    def engine(self) -> "PolicyEngine":
        return self._engine

    def _is_exempt(self, path: str) -> bool:
        return any(match_pattern(pattern, path) for pattern in self._exempt_paths)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        """Evaluate, then reject or forward and commit.

        Args:
            request: Incoming request.
            call_next: Next app in the chain.

        Returns:
            Rejection response, or the downstream response.
        """
        path = request.url.path
        if self._is_exempt(path):
            return await call_next(request)

        # Pinned for evaluate and commit so a reload mid-request cannot split them
        policy = self._engine.policy
        try:
            ctx = build_request_context(
                request.headers,
                request.client.host if request.client else None,
                path=path,
                pricing=policy.pricing,
            )
        except ValueError as e:
            return JSONResponse({"error": str(e)}, status_code=400)

        eval_start = time.perf_counter()
        try:
            decision = self._engine.evaluate(ctx, policy=policy)
        except InternalError as e:
            # Fail closed: a crashed evaluation must not let traffic through
            _system_logger.critical(
                {
                    "event": "policy_enforcement_failure",
                    "message": str(e),
                    "error_type": type(e).__name__,
                    "path": path,
                    "subject_key": ctx.subject_key,
                }
            )
            return JSONResponse({"error": "policy enforcement failure"}, status_code=500)
        eval_ms = (time.perf_counter() - eval_start) * 1000

        if self._decision_logger is not None:
            self._decision_logger.log_decision(
                ctx,
                decision,
                policy_checksum=policy.checksum,
                eval_ms=eval_ms,
                method=request.method,
            )

        if not decision.allowed:
            return decision_response(decision, ctx, policy.pricing)

        response = await call_next(request)
        if response.status_code < 400:
            self._engine.commit(ctx, policy=policy)
        return response
