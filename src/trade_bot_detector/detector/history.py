"""Bounded log of recent classification results for monitoring."""

from __future__ import annotations

import threading
from collections import deque

from trade_bot_detector.detector.models import ClassificationResult

DEFAULT_HISTORY_CAPACITY = 20


class ClassificationHistory:
    """Most-recent-N classification results, oldest evicted first.

    Thread-safe; readers receive tuples, never the live deque.
    """

    def __init__(self, *, capacity: int = DEFAULT_HISTORY_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self._capacity = capacity
        self._results: deque[ClassificationResult] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        with self._lock:
            return len(self._results)

    def append(self, result: ClassificationResult) -> None:
        with self._lock:
            self._results.append(result)

    def recent(self, limit: int | None = None) -> tuple[ClassificationResult, ...]:
        """Return up to ``limit`` most recent results in chronological order."""
        with self._lock:
            results = tuple(self._results)
        if limit is None:
            return results
        if limit <= 0:
            return ()
        return results[-limit:]

    def latest_for(self, trader: str) -> ClassificationResult | None:
        with self._lock:
            for result in reversed(self._results):
                if result.trader == trader:
                    return result
        return None
