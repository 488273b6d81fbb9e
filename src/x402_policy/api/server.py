"""FastAPI application for enforcement and management.

Routes:
- Service control (/api/control)
- Active policy and dry-run evaluation (/api/policy)

With ``enforce=True`` every non-API route is protected by
PolicyEnforcementMiddleware; callers add their own routes to the returned
app.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import FastAPI

from x402_policy import __version__
from x402_policy.pep.middleware import PolicyEnforcementMiddleware

from .routes import control, policy

if TYPE_CHECKING:
    from x402_policy.pdp.engine import PolicyEngine
    from x402_policy.pep.reloader import PolicyReloader
    from x402_policy.telemetry.audit.decision_logger import DecisionLogger

API_PREFIX = "/api"


def create_api_app(
    engine: "PolicyEngine",
    *,
    reloader: "PolicyReloader | None" = None,
    decision_logger: "DecisionLogger | None" = None,
    enforce: bool = False,
) -> FastAPI:
    """Create the FastAPI application with all routes.

    Args:
        engine: Engine shared by the API and the enforcement middleware.
        reloader: Reloader for POST /api/control/reload-policy.
        decision_logger: Audit logger used by the enforcement middleware.
        enforce: Add PolicyEnforcementMiddleware for non-API routes.

    Returns:
        Configured FastAPI app.
    """
    app = FastAPI(
        title="x402 Policy API",
        description="Management API for x402 policy enforcement",
        version=__version__,
    )
    app.state.policy_engine = engine
    app.state.policy_reloader = reloader

    if enforce:
        app.add_middleware(
            PolicyEnforcementMiddleware,
            engine=engine,
            decision_logger=decision_logger,
            exempt_paths=(f"{API_PREFIX}/*",),
        )

    app.include_router(control.router, prefix=f"{API_PREFIX}/control", tags=["control"])
    app.include_router(policy.router, prefix=f"{API_PREFIX}/policy", tags=["policy"])

    return app
