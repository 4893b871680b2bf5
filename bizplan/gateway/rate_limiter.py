"""Rate Window Tracker — sliding window of successful dispatch timestamps.

Keeps at most ``capacity`` timestamps from the last 60 seconds and derives
the delay required before the next dispatch. Spacing is enforced against the
oldest retained timestamp:

    min_spacing = ceil(window_ms / capacity)
    delay = max(0, min_spacing - (now - oldest))

Only successful upstream calls are recorded, so failed or retried attempts
never consume window capacity.
"""

from __future__ import annotations

import logging
import math
import time
from collections import deque
from collections.abc import Callable

logger = logging.getLogger(__name__)


class RateWindowTracker:
    """Sliding-window dispatch tracker.

    Usage:
        tracker = RateWindowTracker(capacity=2)

        # Before sending a request:
        wait = tracker.delay_before_next_dispatch()
        if wait > 0:
            await asyncio.sleep(wait)

        # After a successful response:
        tracker.record_dispatch()
    """

    def __init__(
        self,
        capacity: int = 2,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self.window_seconds = window_seconds
        self._clock = clock
        self._entries: deque[float] = deque()

    @property
    def min_spacing(self) -> float:
        """Minimum seconds between the oldest retained dispatch and the next one."""
        return math.ceil(self.window_seconds * 1000 / self.capacity) / 1000

    @property
    def timestamps(self) -> list[float]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def delay_before_next_dispatch(self, now: float | None = None) -> float:
        """Seconds to wait before the next dispatch. 0 means go now."""
        if len(self._entries) < self.capacity:
            return 0.0

        now = self._clock() if now is None else now
        oldest = self._entries[0]
        return max(0.0, self.min_spacing - (now - oldest))

    def record_dispatch(self, now: float | None = None) -> None:
        """Record a successful dispatch and trim the window."""
        now = self._clock() if now is None else now
        self._entries.append(now)

        while self._entries and now - self._entries[0] >= self.window_seconds:
            self._entries.popleft()

        while len(self._entries) > self.capacity:
            self._entries.popleft()

        logger.debug("Rate window after dispatch: %d/%d entries", len(self._entries), self.capacity)

    def get_stats(self) -> dict:
        return {
            "entries": len(self._entries),
            "capacity": self.capacity,
            "window_seconds": self.window_seconds,
            "min_spacing_seconds": self.min_spacing,
            "next_delay_seconds": round(self.delay_before_next_dispatch(), 3),
        }
