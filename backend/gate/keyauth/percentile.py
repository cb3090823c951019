"""Live percentile ranking over authentication latencies."""

import threading
from dataclasses import dataclass

MAX_PERCENTILE = 100.0


@dataclass(frozen=True)
class LatencySummary:
    count: int
    fastest: float
    slowest: float
    average: float


class PercentileTracker:
    """Append-only latency history shared by all sessions.

    Latencies are seconds, stored in completion order. Ranks are computed
    against a snapshot taken under the lock, so a concurrent ``record``
    never changes the count used for a rank mid-iteration.

    A sample counts against itself: ``rank`` is taken over the history that
    already contains it, and equal latencies are not counted as faster.
    """

    def __init__(self) -> None:
        self._history: list[float] = []
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._history)

    def record(self, latency: float) -> None:
        if latency < 0:
            raise ValueError(f"latency must be non-negative, got {latency}")
        with self._lock:
            self._history.append(latency)

    def percentile_rank(self, latency: float) -> float:
        """Share of recorded samples (0-100) this latency is not slower than."""
        with self._lock:
            return self._rank(latency)

    def record_and_rank(self, latency: float) -> float:
        """Record a sample and rank it in one step against the same history."""
        if latency < 0:
            raise ValueError(f"latency must be non-negative, got {latency}")
        with self._lock:
            self._history.append(latency)
            return self._rank(latency)

    def snapshot(self) -> list[float]:
        with self._lock:
            return self._history.copy()

    def summary(self) -> LatencySummary | None:
        """Count/fastest/slowest/average, or None when nothing is recorded."""
        history = self.snapshot()
        if not history:
            return None
        return LatencySummary(
            count=len(history),
            fastest=min(history),
            slowest=max(history),
            average=sum(history) / len(history),
        )

    def clear(self) -> None:
        with self._lock:
            self._history.clear()

    def _rank(self, latency: float) -> float:
        total = len(self._history)
        if total <= 1:
            # first responder beats everyone
            return MAX_PERCENTILE
        faster_count = sum(1 for recorded in self._history if recorded < latency)
        rank = (1.0 - faster_count / total) * 100
        return max(0.0, min(MAX_PERCENTILE, rank))
