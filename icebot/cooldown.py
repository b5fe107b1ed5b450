"""Per-account cooldown for the verification button."""

from __future__ import annotations

import time
from typing import Callable, Optional

PRUNE_FACTOR = 4


class CooldownStore:
    """Last-attempt timestamps keyed by account id.

    ``hit`` always recomputes elapsed time from the stored timestamp, so
    ``prune`` only bounds memory and never changes a decision.
    """

    def __init__(self, window: float, clock: Callable[[], float] = time.monotonic):
        self.window = window
        self.clock = clock
        self._last: dict[str, float] = {}

    def __len__(self) -> int:
        return len(self._last)

    def remaining(self, key: str, now: Optional[float] = None) -> float:
        """Seconds left before ``key`` may try again (0 when allowed)."""
        now = self.clock() if now is None else now
        last = self._last.get(key)
        if last is None:
            return 0.0
        return max(0.0, self.window - (now - last))

    def hit(self, key: str) -> float:
        """Record an attempt if allowed. Returns the remaining wait otherwise."""
        now = self.clock()
        wait = self.remaining(key, now)
        if wait == 0.0:
            self._last[key] = now
        return wait

    def prune(self) -> int:
        """Drop entries older than ``PRUNE_FACTOR`` windows. Returns how many."""
        cutoff = self.clock() - self.window * PRUNE_FACTOR
        stale = [key for key, last in self._last.items() if last < cutoff]
        for key in stale:
            del self._last[key]
        return len(stale)
