"""Shared dependencies for API routes.

FastAPI convention: deps.py contains reusable request dependencies.
All route files should import dependencies from here rather than
defining their own helper functions.

Usage with Annotated:
    from x402_policy.api.deps import PolicyEngineDep

    @router.get("")
    async def get_policy(engine: PolicyEngineDep) -> PolicyResponse:
        ...
"""

__all__ = [
    # Dependency functions
    "get_policy_engine",
    "get_policy_reloader",
    # Type aliases for Annotated pattern
    "PolicyEngineDep",
    "PolicyReloaderDep",
]

from typing import Annotated, cast

from fastapi import Depends, HTTPException, Request

from x402_policy.pdp.engine import PolicyEngine
from x402_policy.pep.reloader import PolicyReloader

# =============================================================================
# Dependency Functions
# =============================================================================


def get_policy_engine(request: Request) -> PolicyEngine:
    """Get PolicyEngine from app.state.

    Raises:
        HTTPException: 503 if the engine is not available.
    """
    engine = getattr(request.app.state, "policy_engine", None)
    if engine is None:
        raise HTTPException(
            status_code=503,
            detail="Policy engine not available. Service may still be starting.",
        )
    return cast(PolicyEngine, engine)


def get_policy_reloader(request: Request) -> PolicyReloader:
    """Get PolicyReloader from app.state.

    Raises:
        HTTPException: 503 if policy reloader not available.
    """
    reloader = getattr(request.app.state, "policy_reloader", None)
    if reloader is None:
        raise HTTPException(
            status_code=503,
            detail="Policy reloader not available. Start the service with a policy file.",
        )
    return cast(PolicyReloader, reloader)


# =============================================================================
# Type Aliases for Annotated Pattern
# =============================================================================

PolicyEngineDep = Annotated[PolicyEngine, Depends(get_policy_engine)]
PolicyReloaderDep = Annotated[PolicyReloader, Depends(get_policy_reloader)]
