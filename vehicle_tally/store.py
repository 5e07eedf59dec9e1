"""Running vehicle tallies and bounded detection history."""

from __future__ import annotations

import logging
import math
import threading
from collections import Counter, deque
from datetime import datetime
from typing import Deque, Iterable, List, Optional, Tuple

from .types import CountSnapshot, Detection, TallySummary, VehicleCategory

logger = logging.getLogger(__name__)

__all__ = ["AggregationStore"]


class AggregationStore:
    """Keep cumulative per-category counts and the most recent detections.

    History is bounded to ``history_limit`` entries and evicts the oldest
    detection first.  Counts are cumulative for the session and are not
    reduced by eviction.  All mutations happen under a single lock so a
    snapshot never observes ``total`` out of step with the per-category counts.
    """

    def __init__(self, history_limit: int = 1000) -> None:
        if history_limit <= 0:
            raise ValueError("history_limit must be positive")
        self.history_limit = history_limit
        self._lock = threading.Lock()
        self._counts: Counter = Counter()
        self._total = 0
        self._history: Deque[Detection] = deque(maxlen=history_limit)

    def record(self, detections: Iterable[Detection]) -> int:
        """Append ``detections`` to history and update counts as one unit.

        Returns the number of detections recorded.
        """

        batch = list(detections)
        if not batch:
            return 0

        frame_counter: Counter = Counter(VehicleCategory(det.category) for det in batch)
        with self._lock:
            self._history.extend(batch)
            self._counts.update(frame_counter)
            self._total += len(batch)

        logger.debug("Recorded %d detections: %s", len(batch), dict(frame_counter))
        return len(batch)

    def snapshot(self) -> CountSnapshot:
        with self._lock:
            return CountSnapshot(counts=dict(self._counts), total=self._total)

    def history(self, limit: Optional[int] = None) -> List[Detection]:
        """Return detections oldest first, optionally only the last ``limit``."""

        if limit is not None and limit < 0:
            raise ValueError("limit must be non-negative")
        with self._lock:
            items = list(self._history)
        if limit is None:
            return items
        return items[-limit:] if limit else []

    def state(self) -> Tuple[CountSnapshot, List[Detection]]:
        """Return counts and full history read under the same lock."""

        with self._lock:
            return (
                CountSnapshot(counts=dict(self._counts), total=self._total),
                list(self._history),
            )

    def recent(self, limit: int = 10) -> List[Detection]:
        """Shortcut for the most recent detections shown in summaries."""

        return self.history(limit)

    def summary(self, now: datetime, window: int = 10) -> TallySummary:
        """Summarise the tally, with a detection rate over the last ``window``."""

        if window <= 0:
            raise ValueError("window must be positive")
        with self._lock:
            counts = dict(self._counts)
            total = self._total
            recent = list(self._history)[-window:]

        named = [category for category in VehicleCategory if category is not VehicleCategory.UNKNOWN]
        leader = max(named, key=lambda category: counts.get(category, 0))
        most_common = leader if counts.get(leader, 0) else None

        percentages = {
            category: (100.0 * counts.get(category, 0) / total if total else 0.0)
            for category in VehicleCategory
        }

        rate = None
        if recent:
            elapsed = (now - recent[0].observed_at).total_seconds()
            minutes = max(1, math.ceil(elapsed / 60))
            rate = len(recent) / minutes

        return TallySummary(most_common=most_common, percentages=percentages, rate_per_minute=rate)

    def reset(self) -> None:
        """Clear cumulative statistics and history."""

        with self._lock:
            self._counts.clear()
            self._total = 0
            self._history.clear()
        logger.info("Vehicle tally reset")

    def load(self, snapshot: CountSnapshot, detections: Iterable[Detection]) -> None:
        """Replace the session state with previously exported data."""

        batch = list(detections)
        with self._lock:
            self._counts = Counter({c: n for c, n in snapshot.counts.items() if n})
            self._total = snapshot.total
            self._history = deque(batch, maxlen=self.history_limit)

    def __len__(self) -> int:
        with self._lock:
            return len(self._history)
