"""Policy Enforcement Point (PEP) - apply decisions to HTTP traffic.

Structure:
    middleware.py     - Starlette middleware: evaluate, respond, commit
    reloader.py       - Hot reload of the policy file
"""

from x402_policy.pep.middleware import PolicyEnforcementMiddleware, decision_response
from x402_policy.pep.reloader import PolicyReloader, ReloadResult

__all__ = [
    "PolicyEnforcementMiddleware",
    "PolicyReloader",
    "ReloadResult",
    "decision_response",
]
