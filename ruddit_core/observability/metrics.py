"""In-process metrics for the ingestion pipeline.

- Counters: facet requests, merged/quarantined posts, flattened comments,
  token requests
- Gauges: size of the last merged result set
- Histograms: upstream request latency

Series are keyed ``name{label=value,...}`` with labels sorted, which is
also the key format of the ``GET /metrics`` snapshot.
"""

import threading
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator, Optional


# Metric names
FACET_REQUESTS = "facet_requests_total"
POSTS_MERGED = "posts_merged_total"
POSTS_QUARANTINED = "posts_quarantined_total"
COMMENTS_FLATTENED = "comments_flattened_total"
TOKEN_REQUESTS = "token_requests_total"
LAST_RUN_POSTS = "last_run_posts"
UPSTREAM_LATENCY = "upstream_request_seconds"

Labels = Optional[dict[str, str]]


def series_key(name: str, labels: Labels = None) -> str:
    if not labels:
        return name
    rendered = ",".join(f"{k}={v}" for k, v in sorted(labels.items()))
    return f"{name}{{{rendered}}}"


def summarize(values: list[float]) -> dict[str, float]:
    """Count, min, max, mean and nearest-rank p50/p95 of a sample."""
    if not values:
        return {"count": 0, "min": 0, "max": 0, "avg": 0}

    ordered = sorted(values)
    count = len(ordered)

    def rank(q: float) -> float:
        return ordered[min(int(count * q), count - 1)]

    return {
        "count": count,
        "min": ordered[0],
        "max": ordered[-1],
        "avg": sum(ordered) / count,
        "p50": rank(0.5),
        "p95": rank(0.95),
    }


class MetricsCollector:
    """Thread-safe metrics collector.

    Values live in memory for the lifetime of the process. Every access
    holds the collector lock.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._counters: dict[str, float] = {}
        self._gauges: dict[str, float] = {}
        self._samples: dict[str, list[float]] = {}

    def increment(self, name: str, value: float = 1, labels: Labels = None) -> None:
        """Add ``value`` to a counter series."""
        key = series_key(name, labels)
        with self._lock:
            self._counters[key] = self._counters.get(key, 0) + value

    def set_gauge(self, name: str, value: float, labels: Labels = None) -> None:
        with self._lock:
            self._gauges[series_key(name, labels)] = value

    def record_histogram(self, name: str, value: float, labels: Labels = None) -> None:
        key = series_key(name, labels)
        with self._lock:
            self._samples.setdefault(key, []).append(value)

    @contextmanager
    def timer(self, name: str, labels: Labels = None) -> Iterator[None]:
        """Record the wall time of the wrapped block in a histogram."""
        started = time.perf_counter()
        try:
            yield
        finally:
            self.record_histogram(name, time.perf_counter() - started, labels)

    def get(self, name: str, labels: Labels = None) -> float:
        """Current value of a counter or gauge, 0 if never recorded."""
        key = series_key(name, labels)
        with self._lock:
            return self._counters.get(key, self._gauges.get(key, 0))

    def get_histogram_stats(self, name: str, labels: Labels = None) -> dict[str, float]:
        key = series_key(name, labels)
        with self._lock:
            values = list(self._samples.get(key, ()))
        return summarize(values)

    def get_all(self) -> dict[str, Any]:
        """JSON-ready snapshot of every series."""
        with self._lock:
            counters = dict(self._counters)
            gauges = dict(self._gauges)
            samples = {key: list(values) for key, values in self._samples.items()}

        return {
            "collected_at": datetime.now(timezone.utc).isoformat(),
            "counters": counters,
            "gauges": gauges,
            "histograms": {key: summarize(values) for key, values in samples.items()},
        }

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()
            self._gauges.clear()
            self._samples.clear()


_collector = MetricsCollector()


def get_collector() -> MetricsCollector:
    """Get the process-wide metrics collector."""
    return _collector
