"""
Bounded, time-keyed history of recent candidate plans.
"""

from collections import deque
from typing import Iterator, Optional

from portrait_crop.models import CropPlan


class PlanHistory:
    """
    Ring buffer of (timestamp, plan) pairs covering the smoothing window.

    Entries older than ``window`` seconds relative to the newest entry are
    evicted on insert; ``capacity`` caps the entry count regardless.
    """

    def __init__(self, window: float, capacity: int):
        self.window = window
        self._entries: deque[tuple[float, CropPlan]] = deque(maxlen=max(1, capacity))

    def add(self, timestamp: float, plan: CropPlan) -> None:
        """Append a plan and drop entries outside the window."""
        self._entries.append((timestamp, plan))
        horizon = timestamp - self.window
        while self._entries and self._entries[0][0] < horizon:
            self._entries.popleft()

    def clear(self) -> None:
        self._entries.clear()

    def latest(self) -> Optional[tuple[float, CropPlan]]:
        return self._entries[-1] if self._entries else None

    def oldest(self) -> Optional[tuple[float, CropPlan]]:
        return self._entries[0] if self._entries else None

    def span(self) -> float:
        """Seconds between the oldest and newest entry."""
        if not self._entries:
            return 0.0
        return self._entries[-1][0] - self._entries[0][0]

    @property
    def capacity(self) -> int:
        return self._entries.maxlen or 0

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[tuple[float, CropPlan]]:
        return iter(self._entries)
