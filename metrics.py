"""
Metrics for the PostPolice cache server.

Two layers:
    - CacheMetrics: the hit/miss counters behind GET /metrics. An explicit
      object owned by the cache service and shared with the HTTP layer, so
      tests can run independent instances. Resettable via /reset-stats.
    - Prometheus collectors (RED: Rate, Errors, Duration) exposed at
      GET /metrics/prometheus. Monotonic, never reset.

CARDINALITY:
    Labels here are endpoints, status codes and fixed outcome names. Never
    label by cache key or content.
"""

import logging
import threading
import time
from typing import Callable

from prometheus_client import Counter, Gauge, Histogram, REGISTRY

logger = logging.getLogger(__name__)


# =============================================================================
# RED METRICS (Rate, Errors, Duration)
# =============================================================================

postpolice_requests_total = Counter(
    "postpolice_requests_total",
    "Total HTTP requests to the PostPolice cache server",
    labelnames=["endpoint", "status"],
)

postpolice_request_duration_seconds = Histogram(
    "postpolice_request_duration_seconds",
    "HTTP request latency in seconds",
    labelnames=["endpoint"],
    buckets=[
        0.005,  # 5ms - cache hits on a local store
        0.01,
        0.05,
        0.1,
        0.25,
        0.5,
        1.0,
        2.5,    # store timeout territory
        5.0,
        10.0,
        30.0,   # /summarize upstream timeout
        float("inf"),
    ],
)


# =============================================================================
# CACHE METRICS
# =============================================================================

postpolice_cache_lookups_total = Counter(
    "postpolice_cache_lookups_total",
    "Cache lookups by outcome",
    labelnames=["outcome"],  # "hit" | "miss"
)

postpolice_cache_writes_total = Counter(
    "postpolice_cache_writes_total",
    "Cache writes by outcome",
    labelnames=["outcome"],  # "stored" | "failed"
)

postpolice_store_up = Gauge(
    "postpolice_store_up",
    "1 if the backing store answered the last liveness probe, else 0",
)


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def record_request(endpoint: str, status: int, duration_seconds: float) -> None:
    """Record request metrics (counter + duration histogram). Called from middleware."""
    postpolice_requests_total.labels(endpoint=endpoint, status=str(status)).inc()
    postpolice_request_duration_seconds.labels(endpoint=endpoint).observe(duration_seconds)


def record_write(outcome: str) -> None:
    """Record a cache write outcome: "stored" or "failed"."""
    if outcome not in ("stored", "failed"):
        logger.warning(f"Invalid cache write outcome: {outcome}")
        return
    postpolice_cache_writes_total.labels(outcome=outcome).inc()


def set_store_up(up: bool) -> None:
    postpolice_store_up.set(1 if up else 0)


class CacheMetrics:
    """
    Process-wide hit/miss counters plus process uptime.

    Increments and reads go through a mutex, so no update is lost even if
    lookups ever run outside the single event loop thread.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self.started_at = clock()

    def record_hit(self) -> None:
        with self._lock:
            self._hits += 1
        postpolice_cache_lookups_total.labels(outcome="hit").inc()

    def record_miss(self) -> None:
        with self._lock:
            self._misses += 1
        postpolice_cache_lookups_total.labels(outcome="miss").inc()

    def counts(self) -> tuple[int, int]:
        """Consistent (hits, misses) pair."""
        with self._lock:
            return self._hits, self._misses

    @property
    def hits(self) -> int:
        return self.counts()[0]

    @property
    def misses(self) -> int:
        return self.counts()[1]

    def reset(self) -> None:
        """Zero hits/misses. Uptime is not affected."""
        with self._lock:
            self._hits = 0
            self._misses = 0

    def uptime_seconds(self) -> float:
        return self._clock() - self.started_at


__all__ = [
    "postpolice_requests_total",
    "postpolice_request_duration_seconds",
    "postpolice_cache_lookups_total",
    "postpolice_cache_writes_total",
    "postpolice_store_up",
    "record_request",
    "record_write",
    "set_store_up",
    "CacheMetrics",
    "REGISTRY",
]
