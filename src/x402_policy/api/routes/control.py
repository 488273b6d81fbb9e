"""Service control API endpoints.

Provides:
- GET /status - Current service and policy status
- POST /reload-policy - Hot reload policy from disk
"""

__all__ = [
    "router",
    "ServiceStatus",
    "ReloadResponse",
]

from fastapi import APIRouter
from pydantic import BaseModel

from x402_policy.api.deps import PolicyEngineDep, PolicyReloaderDep

router = APIRouter()


class ServiceStatus(BaseModel):
    """Service and policy status."""

    running: bool
    uptime_seconds: float
    policy_checksum: str
    policy_rules_count: int
    last_reload_at: str | None
    reload_count: int
    state_entries: int


class ReloadResponse(BaseModel):
    """Policy reload response."""

    status: str  # "success", "parse_error", "validation_error", "file_error"
    old_rules_count: int
    new_rules_count: int
    error: str | None = None
    policy_checksum: str | None = None
    issues: list[str] | None = None


@router.get("/status")
async def get_status(engine: PolicyEngineDep, reloader: PolicyReloaderDep) -> ServiceStatus:
    """Get current service and policy status.

    Returns:
        ServiceStatus with uptime, checksum, rules count, reload info.
    """
    return ServiceStatus(
        running=True,
        uptime_seconds=reloader.uptime_seconds,
        policy_checksum=engine.policy.checksum,
        policy_rules_count=len(engine.policy.rules),
        last_reload_at=reloader.last_reload_at,
        reload_count=reloader.reload_count,
        state_entries=len(engine.state_store),
    )


@router.post("/reload-policy")
async def reload_policy(reloader: PolicyReloaderDep) -> ReloadResponse:
    """Reload policy from disk without restarting.

    Validates the new policy before applying. On failure the old policy
    remains active (last known good).

    Returns:
        ReloadResponse with status, rule counts, and checksum.
    """
    result = await reloader.reload()

    return ReloadResponse(
        status=result.status,
        old_rules_count=result.old_rules_count,
        new_rules_count=result.new_rules_count,
        error=result.error,
        policy_checksum=result.policy_checksum,
        issues=result.issues,
    )
