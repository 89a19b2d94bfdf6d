"""Prometheus-style counter registry for coordination events. Thread-safe, in-memory."""

import threading
from typing import Any


def _series(name: str, labels: dict[str, str]) -> str:
    if not labels:
        return name
    rendered = ",".join(f"{k}={v}" for k, v in sorted(labels.items()))
    return f"{name}{{{rendered}}}"


class MetricsCollector:
    """
    In-memory counters keyed by name and label set. Exposes increment,
    get, export_metrics and reset. Safe to share between tasks and threads.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        # name -> {series -> value}
        self._counters: dict[str, dict[str, float]] = {}

    def increment(self, name: str, value: float = 1.0, **labels: str) -> None:
        """Increment a counter. Keyword labels become dimensions (e.g. resource="uploads")."""
        series = _series(name, labels)
        with self._lock:
            bucket = self._counters.setdefault(name, {})
            bucket[series] = bucket.get(series, 0) + value

    def get(self, name: str, **labels: str) -> float:
        """Current value of one series, or the sum over all series when no labels are given."""
        with self._lock:
            bucket = self._counters.get(name, {})
            if labels:
                return bucket.get(_series(name, labels), 0)
            return sum(bucket.values())

    def export_metrics(self) -> dict[str, Any]:
        """Export all counters as a dict (Prometheus-style series names)."""
        with self._lock:
            return {
                "counters": {
                    series: value
                    for bucket in self._counters.values()
                    for series, value in bucket.items()
                }
            }

    def reset(self) -> None:
        """Reset all metrics (for tests)."""
        with self._lock:
            self._counters.clear()
