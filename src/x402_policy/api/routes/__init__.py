"""API route modules.

- control: Service status and policy hot reload
- policy: Active policy and dry-run evaluation
"""

from . import control, policy

__all__ = ["control", "policy"]
