"""Policy hot reload support.

Provides PolicyReloader for reloading the policy file without restarting
the service. Handles parsing, validation, atomic swap, logging, and
status tracking.

Triggers:
- API endpoint POST /api/control/reload-policy
"""

from __future__ import annotations

__all__ = [
    "PolicyReloader",
    "ReloadResult",
]

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Literal

from x402_policy.exceptions import PolicyParseError, PolicyValidationError
from x402_policy.utils.policy import load_validated_policy

if TYPE_CHECKING:
    import logging

    from x402_policy.pdp.engine import PolicyEngine


@dataclass
class ReloadResult:
    """Result of a policy reload attempt.

    Attributes:
        status: "success", "parse_error", "validation_error", or "file_error".
        old_rules_count: Number of rules before reload.
        new_rules_count: Number of rules after reload.
        error: Error message if status is not "success".
        policy_checksum: Checksum of the active policy after the attempt.
        issues: Validation error messages (validation_error only).
    """

    status: Literal["success", "parse_error", "validation_error", "file_error"]
    old_rules_count: int = 0
    new_rules_count: int = 0
    error: str | None = None
    policy_checksum: str | None = None
    issues: list[str] | None = None


class PolicyReloader:
    """Handles policy hot reload with validation, logging, and state tracking.

    Orchestrates the reload process:
    1. Load, parse and validate the policy file
    2. Swap into the engine (atomic)
    3. Log reload event
    4. Track state for status endpoint

    Rate and spending state is kept across reloads.
    """

    def __init__(
        self,
        engine: "PolicyEngine",
        system_logger: "logging.Logger",
        policy_path: Path,
    ) -> None:
        """Initialize policy reloader.

        Args:
            engine: The engine to reload policy into.
            system_logger: Logger for reload events.
            policy_path: Path to the policy file.
        """
        self._engine = engine
        self._logger = system_logger
        self._policy_path = policy_path

        # State for status endpoint
        self._last_reload_at: datetime | None = None
        self._started_at = datetime.now(timezone.utc)
        self._reload_count = 0

        # Mutex to prevent concurrent reloads from racing
        self._reload_lock = asyncio.Lock()

    @property
    def policy_path(self) -> Path:
        return self._policy_path

    @property
    def current_checksum(self) -> str:
        """Checksum of the active policy."""
        return self._engine.policy.checksum

    @property
    def current_rules_count(self) -> int:
        """Get current number of policy rules."""
        return len(self._engine.policy.rules)

    @property
    def last_reload_at(self) -> str | None:
        """Get ISO 8601 timestamp of last reload, or None if never reloaded."""
        return self._last_reload_at.isoformat() if self._last_reload_at else None

    @property
    def uptime_seconds(self) -> float:
        """Get seconds since the reloader was created (service startup)."""
        return (datetime.now(timezone.utc) - self._started_at).total_seconds()

    @property
    def reload_count(self) -> int:
        """Get number of successful reloads since startup."""
        return self._reload_count

    async def reload(self) -> ReloadResult:
        """Reload policy from disk.

        On any failure the old policy stays active (last known good).

        Returns:
            ReloadResult with status, counts, and checksum.
        """
        async with self._reload_lock:
            old_count = self.current_rules_count

            # Load in thread pool (file I/O)
            try:
                new_policy = await asyncio.to_thread(load_validated_policy, self._policy_path)
            except FileNotFoundError:
                return self._failed("file_error", f"Policy file not found: {self._policy_path}", old_count)
            except PolicyParseError as e:
                return self._failed("parse_error", str(e), old_count)
            except PolicyValidationError as e:
                issues = [issue.message for issue in e.report.errors]
                return self._failed("validation_error", str(e), old_count, issues=issues)
            except ValueError as e:
                return self._failed("file_error", str(e), old_count)

            swap_result = self._engine.reload_policy(new_policy)

            self._last_reload_at = datetime.now(timezone.utc)
            self._reload_count += 1

            result = ReloadResult(
                status="success",
                old_rules_count=swap_result["old_rules_count"],
                new_rules_count=swap_result["new_rules_count"],
                policy_checksum=new_policy.checksum,
            )
            self._log_reload_success(result, swap_result["old_checksum"])
            return result

    def _failed(
        self,
        status: Literal["parse_error", "validation_error", "file_error"],
        error: str,
        old_count: int,
        issues: list[str] | None = None,
    ) -> ReloadResult:
        self._log_reload_failed(status, error)
        return ReloadResult(
            status=status,
            old_rules_count=old_count,
            new_rules_count=old_count,
            error=error,
            policy_checksum=self.current_checksum,
            issues=issues,
        )

    def _log_reload_success(self, result: ReloadResult, old_checksum: str) -> None:
        """Log successful reload to the system log."""
        self._logger.info(
            {
                "event": "policy_reloaded",
                "old_rules_count": result.old_rules_count,
                "new_rules_count": result.new_rules_count,
                "old_checksum": old_checksum,
                "policy_checksum": result.policy_checksum,
                "reload_count": self._reload_count,
            }
        )

    def _log_reload_failed(self, error_type: str, error: str) -> None:
        """Log failed reload to the system log."""
        self._logger.error(
            {
                "event": "policy_reload_failed",
                "error_type": error_type,
                "error": error,
                "policy_path": str(self._policy_path),
            }
        )
