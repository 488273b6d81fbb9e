"""Request context - the engine's view of an incoming request.

The engine only sees identity attributes, a cost estimate and a timestamp.
build_request_context maps an HTTP request onto that shape.
"""

from x402_policy.context.request import RequestContext, build_request_context

__all__ = [
    "RequestContext",
    "build_request_context",
]
