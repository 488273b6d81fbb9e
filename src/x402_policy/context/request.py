"""Request descriptor consumed by the policy engine."""

from __future__ import annotations

__all__ = [
    "RequestContext",
    "build_request_context",
]

import math
import re
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Mapping

from x402_policy.constants import (
    ANONYMOUS_SUBJECT,
    COST_HEADER_PATTERN,
    HEADER_AGENT_ID,
    HEADER_ESTIMATED_COST,
    HEADER_WALLET_ADDRESS,
    LIST_FIELDS,
)

_COST_RE = re.compile(COST_HEADER_PATTERN)

if TYPE_CHECKING:
    from x402_policy.pdp.policy import PricingConfig


@dataclass(frozen=True)
class RequestContext:
    """Attributes of one request, as seen by the engine.

    Attributes:
        agent_id: Agent identifier, if the client sent one.
        wallet_address: Paying wallet, if known.
        ip_address: Client IP address, if known.
        estimated_cost: Cost of the protected action (0 for free resources).
        timestamp: Unix time of the request (defaults to now).
        path: Request path, used only for route pricing.
    """

    agent_id: str | None = None
    wallet_address: str | None = None
    ip_address: str | None = None
    estimated_cost: float = 0.0
    timestamp: float = field(default_factory=time.time)
    path: str | None = None

    def __post_init__(self) -> None:
        if not math.isfinite(self.estimated_cost) or self.estimated_cost < 0:
            raise ValueError(f"estimated_cost must be a finite, non-negative number, got {self.estimated_cost!r}")

    def attribute(self, name: str) -> str | None:
        """Value of an identity attribute (agent_id, wallet_address, ip_address)."""
        if name not in LIST_FIELDS:
            raise KeyError(name)
        value: str | None = getattr(self, name)
        return value

    @property
    def subject_key(self) -> str:
        """Identity that rate and spending state is tracked under.

        First present attribute in agent_id, wallet_address, ip_address
        order, rendered "<field>:<value>".
        """
        for name in LIST_FIELDS:
            value = getattr(self, name)
            if value:
                return f"{name}:{value}"
        return ANONYMOUS_SUBJECT


def build_request_context(
    headers: Mapping[str, str],
    client_host: str | None,
    path: str | None = None,
    pricing: "PricingConfig | None" = None,
    timestamp: float | None = None,
) -> RequestContext:
    """Build a RequestContext from HTTP request data.

    Header names are matched case-insensitively. When the client does not
    send X-402-Estimated-Cost, the price is resolved from ``pricing`` (or 0).

    Args:
        headers: Request headers.
        client_host: Peer address of the client.
        path: Request path.
        pricing: Policy pricing section for cost resolution.
        timestamp: Request time; defaults to now.

    Returns:
        RequestContext for evaluation.

    Raises:
        ValueError: If the cost header is not an unsigned decimal number,
            or does not fit a finite float.
    """
    lowered = {k.lower(): v for k, v in headers.items()}

    raw_cost = lowered.get(HEADER_ESTIMATED_COST)
    if raw_cost is not None:
        if not _COST_RE.fullmatch(raw_cost):
            raise ValueError(f"Invalid {HEADER_ESTIMATED_COST} header: {raw_cost!r}")
        cost = float(raw_cost)
    elif pricing is not None:
        from x402_policy.pdp.pricing import resolve_price

        cost = resolve_price(pricing, path)
    else:
        cost = 0.0

    return RequestContext(
        agent_id=lowered.get(HEADER_AGENT_ID) or None,
        wallet_address=lowered.get(HEADER_WALLET_ADDRESS) or None,
        ip_address=client_host or None,
        estimated_cost=cost,
        timestamp=time.time() if timestamp is None else timestamp,
        path=path,
    )
