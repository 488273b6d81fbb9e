"""Management API (FastAPI) for a running enforcement service."""

from x402_policy.api.server import create_api_app

__all__ = ["create_api_app"]
