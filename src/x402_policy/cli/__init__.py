"""Command-line interface for x402-policy.

Provides commands for validating policies, generating middleware, dry-run
evaluation, and inspecting configuration.
"""

from .main import cli, main

__all__ = ["cli", "main"]
