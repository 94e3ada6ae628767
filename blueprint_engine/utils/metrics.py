"""
Blueprint Engine Metrics
Thread-safe in-process counters and rolling timing windows per operation.

Counter names follow ``{operation}_requests_total`` and
``{operation}_failed_total_{error_kind}``; timings are kept under
``{operation}_duration_ms``.
"""
import time
from collections import Counter, deque
from threading import Lock
from typing import Any, Deque, Dict, Optional

import numpy as np

# Samples kept per timing series; older ones fall off
TIMING_WINDOW = 1000


class MetricsCollector:
    """Counters plus a bounded window of durations for each timed operation."""

    def __init__(self, window: int = TIMING_WINDOW):
        self._lock = Lock()
        self._window = window
        self._counters: Counter = Counter()
        self._timings: Dict[str, Deque[float]] = {}
        self._started = time.monotonic()

    def increment_counter(self, name: str, amount: int = 1):
        with self._lock:
            self._counters[name] += amount

    def increment_request_count(self, operation: str):
        self.increment_counter(f"{operation}_requests_total")

    def increment_failure_count(self, operation: str, error_kind: str):
        self.increment_counter(f"{operation}_failed_total_{error_kind}")

    def record_timing(self, operation: str, duration_ms: float):
        key = f"{operation}_duration_ms"
        with self._lock:
            series = self._timings.get(key)
            if series is None:
                series = self._timings[key] = deque(maxlen=self._window)
            series.append(float(duration_ms))

    def get_counters(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._counters)

    def get_timing_stats(self) -> Dict[str, Dict[str, float]]:
        """count, mean, min, max, p50 and p95 for every non-empty series."""
        with self._lock:
            snapshot = {key: np.fromiter(series, dtype=np.float64) for key, series in self._timings.items() if series}

        stats = {}
        for key, values in snapshot.items():
            p50, p95 = np.percentile(values, [50, 95])
            stats[key] = {
                "count": int(values.size),
                "mean": float(values.mean()),
                "min": float(values.min()),
                "max": float(values.max()),
                "p50": float(p50),
                "p95": float(p95),
            }
        return stats

    def get_uptime_seconds(self) -> float:
        return time.monotonic() - self._started

    def get_summary(self) -> Dict[str, Any]:
        return {
            "uptime_seconds": round(self.get_uptime_seconds(), 3),
            "counters": self.get_counters(),
            "timing_stats": self.get_timing_stats(),
        }

    def reset(self):
        """Clear counters and timings and restart the uptime clock."""
        with self._lock:
            self._counters.clear()
            self._timings.clear()
            self._started = time.monotonic()


_metrics: Optional[MetricsCollector] = None


def get_metrics() -> MetricsCollector:
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics


def reset_metrics():
    """Reset the global collector (used between tests)."""
    if _metrics is not None:
        _metrics.reset()
