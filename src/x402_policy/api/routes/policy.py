"""Policy API endpoints.

Provides:
- GET / - Active policy with checksum and validation warnings
- POST /evaluate - Dry-run evaluation (never commits state)
"""

__all__ = ["router"]

import time

from fastapi import APIRouter, HTTPException

from x402_policy.api.deps import PolicyEngineDep
from x402_policy.api.schemas.policy import (
    EvaluateRequest,
    EvaluateResponse,
    PolicyResponse,
    PolicyRuleResponse,
)
from x402_policy.context import RequestContext
from x402_policy.exceptions import PolicyEnforcementFailure

router = APIRouter()


@router.get("")
async def get_policy(engine: PolicyEngineDep) -> PolicyResponse:
    """Get the active policy."""
    policy = engine.policy
    rules = [
        PolicyRuleResponse(id=rid, type=rule.type, definition=rule.model_dump(mode="json", exclude={"type"}))
        for _idx, rid, rule in policy.iter_rules()
    ]
    return PolicyResponse(
        version=policy.version,
        checksum=policy.checksum,
        rules_count=len(rules),
        rules=rules,
        pricing=policy.pricing.model_dump(mode="json"),
        audit=policy.audit.model_dump(mode="json"),
        warnings=[issue.message for issue in policy.report.warnings],
    )


@router.post("/evaluate")
async def evaluate(body: EvaluateRequest, engine: PolicyEngineDep) -> EvaluateResponse:
    """Evaluate a request description against the active policy.

    Read-only: rate and spending state are not touched.

    Raises:
        HTTPException: 500 if evaluation fails unexpectedly.
    """
    request = RequestContext(
        agent_id=body.agent_id,
        wallet_address=body.wallet_address,
        ip_address=body.ip_address,
        estimated_cost=body.estimated_cost,
        timestamp=body.timestamp if body.timestamp is not None else time.time(),
        path=body.path,
    )
    try:
        decision = engine.evaluate(request)
    except PolicyEnforcementFailure as e:
        raise HTTPException(status_code=500, detail=str(e)) from e

    return EvaluateResponse(
        subject_key=request.subject_key,
        decision=decision.to_dict(),
        policy_checksum=engine.policy.checksum,
    )
