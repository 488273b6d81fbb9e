"""Price resolution for protected routes.

Uses the policy's ``pricing`` section: the most specific matching route
pattern decides the price, otherwise the default amount applies.
"""

from __future__ import annotations

__all__ = ["resolve_price"]

from x402_policy.pdp.matcher import most_specific_match
from x402_policy.pdp.policy import PricingConfig


def resolve_price(pricing: PricingConfig, path: str | None) -> float:
    """Return the price of a call to ``path``.

    Args:
        pricing: Pricing section of the policy.
        path: Request path, or None when unknown.

    Returns:
        Route price of the most specific matching pattern, else the default.
    """
    if path is None or not pricing.routes:
        return pricing.amount
    pattern = most_specific_match(pricing.routes.keys(), path)
    if pattern is None:
        return pricing.amount
    return pricing.routes[pattern]
