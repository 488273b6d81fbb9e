"""Enforcement service assembly.

Builds a ready-to-serve FastAPI app from AppConfig: policy engine, reloader,
decision logger and the enforcement middleware. The returned app is a plain
ASGI application, so any ASGI server can host it:

    uvicorn --factory x402_policy.service:create_service
"""

from __future__ import annotations

__all__ = ["create_service"]

from typing import TYPE_CHECKING

from x402_policy.api.server import create_api_app
from x402_policy.config import AppConfig, get_config_path, load_config_or_default
from x402_policy.pdp.engine import PolicyEngine
from x402_policy.pep.reloader import PolicyReloader
from x402_policy.telemetry.audit.decision_logger import create_decision_logger, get_decision_log_path
from x402_policy.telemetry.system.system_logger import configure_system_logger
from x402_policy.utils.policy import load_validated_policy

if TYPE_CHECKING:
    from fastapi import FastAPI


def create_service(config: AppConfig | None = None) -> "FastAPI":
    """Create the enforcement app described by ``config``.

    Logging:
    - System log: <log_dir>/x402_policy_logs/system/system.jsonl (stderr if no log_dir)
    - Decision log: <log_dir>/x402_policy_logs/audit/decisions.jsonl (off if no log_dir)

    Args:
        config: Application configuration. Loaded from the user config file
            (or defaults) when omitted.

    Returns:
        FastAPI app with enforcement enabled for every non-API route.

    Raises:
        ValueError: If no policy file is configured, or the config file is invalid.
        FileNotFoundError: If the policy file does not exist.
        PolicyParseError: If the policy file cannot be parsed.
        PolicyValidationError: If the policy has validation errors.
    """
    app_config = config if config is not None else load_config_or_default()

    # =========================================================================
    # PHASE 1: Logging
    # =========================================================================
    log_dir = app_config.log_dir
    system_logger = configure_system_logger(log_dir, app_config.logging.log_level)

    # =========================================================================
    # PHASE 2: Policy (fail at startup, never serve without a valid policy)
    # =========================================================================
    policy_path = app_config.policy_path
    if policy_path is None:
        raise ValueError(f"No policy file configured. Set 'policy.path' in {get_config_path()}.")

    policy = load_validated_policy(policy_path)
    engine = PolicyEngine(policy)
    reloader = PolicyReloader(engine, system_logger, policy_path)

    decision_logger = create_decision_logger(get_decision_log_path(log_dir)) if log_dir is not None else None

    system_logger.info(
        {
            "event": "service_started",
            "policy_path": str(policy_path),
            "policy_checksum": policy.checksum,
            "rules_count": len(policy.rules),
            "warnings_count": len(policy.report.warnings),
            "decision_log": decision_logger is not None,
        }
    )

    return create_api_app(engine, reloader=reloader, decision_logger=decision_logger, enforce=True)
