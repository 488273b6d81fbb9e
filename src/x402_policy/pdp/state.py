"""Runtime state for rate limiting and spending accounting.

StateStore is the only shared mutable resource of the engine. It maps a
StateKey (rule id, subject) to either a RateWindowState (sliding window of
committed request instants) or a SpendingWindowState (accumulated amount in
a fixed window).

Concurrency model:
- A store-level lock guards lazy creation of entries.
- Each entry owns a lock; every read-modify-write on that entry (prune then
  append, reset then add) runs under it, so concurrent commits for the same
  subject are never lost or double counted.
- Reads (used by evaluation) take the entry lock too, but never mutate.

Memory is bounded by pruning on every commit rather than by a background
sweep: instants older than the window are dropped whenever the key is next
committed to.
"""

from __future__ import annotations

__all__ = [
    "RateWindowState",
    "RateWindowView",
    "SpendingWindowState",
    "StateKey",
    "StateStore",
    "to_decimal",
]

import bisect
import threading
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, NamedTuple


def to_decimal(amount: float) -> Decimal:
    """Convert a float amount to Decimal via its shortest decimal form."""
    return Decimal(str(amount))


class StateKey(NamedTuple):
    """(rule id, subject) pair, e.g. ("rule_2", "agent_id:agent-7")."""

    rule_id: str
    subject: str


class RateWindowView(NamedTuple):
    """Read-only view of a sliding window at one instant.

    Attributes:
        count: Committed requests inside [now - window, now].
        oldest: Oldest of those instants, or None if count is 0.
    """

    count: int
    oldest: float | None


@dataclass
class RateWindowState:
    """Ordered multiset of committed request instants for one key."""

    instants: list[float] = field(default_factory=list)
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def view(self, now: float, window_seconds: int) -> RateWindowView:
        """Count instants in [now - window, now]. Caller holds ``lock``.

        Instants later than ``now`` are not counted, so a forged future
        timestamp cannot pre-fill somebody's window.
        """
        lo = bisect.bisect_left(self.instants, now - window_seconds)
        hi = bisect.bisect_right(self.instants, now)
        if hi <= lo:
            return RateWindowView(0, None)
        return RateWindowView(hi - lo, self.instants[lo])

    def prune(self, now: float, window_seconds: int) -> None:
        """Drop instants older than now - window. Caller holds ``lock``."""
        cutoff = bisect.bisect_left(self.instants, now - window_seconds)
        if cutoff:
            del self.instants[:cutoff]


@dataclass
class SpendingWindowState:
    """Accumulated spend in a fixed window that starts at the first commit."""

    accumulated: Decimal = Decimal("0")
    window_start: float | None = None
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def is_expired(self, now: float, window_seconds: int) -> bool:
        return self.window_start is None or now - self.window_start > window_seconds

    def effective(self, now: float, window_seconds: int) -> Decimal:
        """Accumulated amount as seen at ``now`` (0 once the window expired)."""
        if self.is_expired(now, window_seconds):
            return Decimal("0")
        return self.accumulated


class StateStore:
    """Thread-safe store of rate and spending windows.

    Created once per engine owner and lives as long as it does. Entries are
    created lazily on first commit and never deleted.

    Example:
        store = StateStore()
        key = StateKey("rule_1", "agent_id:agent-7")
        store.record_request(key, now=1000.0, window_seconds=60)
        store.rate_window(key, now=1010.0, window_seconds=60).count  # 1
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._rate: dict[StateKey, RateWindowState] = {}
        self._spending: dict[StateKey, SpendingWindowState] = {}

    # ------------------------------------------------------------------
    # Rate windows
    # ------------------------------------------------------------------

    def rate_window(self, key: StateKey, now: float, window_seconds: int) -> RateWindowView:
        """Read-only view of a rate window. Never creates or prunes entries."""
        with self._lock:
            state = self._rate.get(key)
        if state is None:
            return RateWindowView(0, None)
        with state.lock:
            return state.view(now, window_seconds)

    def record_request(self, key: StateKey, now: float, window_seconds: int) -> int:
        """Prune stale instants, then append ``now``.

        Returns:
            Number of instants in the window after recording.
        """
        with self._lock:
            state = self._rate.get(key)
            if state is None:
                state = self._rate[key] = RateWindowState()
        with state.lock:
            state.prune(now, window_seconds)
            bisect.insort(state.instants, now)
            return state.view(now, window_seconds).count

    # ------------------------------------------------------------------
    # Spending windows
    # ------------------------------------------------------------------

    def spending_window(self, key: StateKey, now: float, window_seconds: int) -> Decimal:
        """Amount spent in the active window at ``now``. Never mutates."""
        with self._lock:
            state = self._spending.get(key)
        if state is None:
            return Decimal("0")
        with state.lock:
            return state.effective(now, window_seconds)

    def record_spend(self, key: StateKey, amount: Decimal, now: float, window_seconds: int) -> Decimal:
        """Reset the window if it expired, then add ``amount``.

        Returns:
            Accumulated amount after recording.
        """
        with self._lock:
            state = self._spending.get(key)
            if state is None:
                state = self._spending[key] = SpendingWindowState()
        with state.lock:
            if state.is_expired(now, window_seconds):
                state.accumulated = Decimal("0")
                state.window_start = now
            state.accumulated += amount
            return state.accumulated

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def snapshot(self) -> dict[str, Any]:
        """Copy of all entries as plain data, for diagnostics and tests."""
        with self._lock:
            rate_items = list(self._rate.items())
            spending_items = list(self._spending.items())

        rate: dict[str, list[float]] = {}
        for key, rate_state in rate_items:
            with rate_state.lock:
                rate[f"{key.rule_id}|{key.subject}"] = list(rate_state.instants)

        spending: dict[str, dict[str, Any]] = {}
        for key, spend_state in spending_items:
            with spend_state.lock:
                spending[f"{key.rule_id}|{key.subject}"] = {
                    "accumulated": float(spend_state.accumulated),
                    "window_start": spend_state.window_start,
                }

        return {"rate_limits": rate, "spending": spending}

    def __len__(self) -> int:
        with self._lock:
            return len(self._rate) + len(self._spending)
