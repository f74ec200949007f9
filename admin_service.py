"""Cache admin surface - metrics snapshot, purge, counter reset."""

import logging
from dataclasses import dataclass

from cache_redis import RedisStore
from exceptions import AdminOperationError, StoreUnavailable
from metrics import CacheMetrics

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MetricsSnapshot:
    hits: int
    misses: int
    total_keys: int
    used_memory: str
    used_memory_bytes: int
    uptime_seconds: float

    @property
    def hit_rate_percent(self) -> float:
        total = self.hits + self.misses
        return round(self.hits / total * 100, 2) if total > 0 else 0.0


class CacheAdminService:
    """
    Reports how the cache is performing and lets operators purge it.

    Counters (CacheMetrics) and entries (RedisStore) are independent:
    resetting counters keeps cached results, purging keeps the counters.
    """

    def __init__(self, store: RedisStore, cache_metrics: CacheMetrics, purge_scope: str = "all") -> None:
        self.redis_store = store
        self.metrics = cache_metrics
        self.purge_scope = purge_scope

    async def snapshot(self) -> MetricsSnapshot:
        """Counters plus live key count and memory. Raises StoreUnavailable if the store can't answer."""
        hits, misses = self.metrics.counts()
        total_keys = await self.redis_store.key_count()
        memory = await self.redis_store.memory_usage()

        return MetricsSnapshot(
            hits=hits,
            misses=misses,
            total_keys=total_keys,
            used_memory=memory["used_memory_human"],
            used_memory_bytes=memory["used_memory"],
            uptime_seconds=self.metrics.uptime_seconds(),
        )

    async def purge_all(self) -> str:
        """
        Irreversibly delete cached entries. Idempotent.

        purge_scope="all" flushes the whole store, other key families included.
        purge_scope="namespace" deletes only keys under the cache namespace.
        Returns a human-readable result message.
        """
        try:
            if self.purge_scope == "namespace":
                deleted = await self.redis_store.purge_namespace()
                message = f"Cache cleared ({deleted} entries deleted)"
            else:
                await self.redis_store.purge_all()
                message = "Cache cleared (all keys flushed)"
        except StoreUnavailable as e:
            raise AdminOperationError(f"cache purge failed: {e}") from e

        logger.info(message)
        return message

    def reset_counters(self) -> str:
        """Zero hits/misses. Stored entries are untouched. Idempotent."""
        self.metrics.reset()
        logger.info("Cache hit/miss counters reset")
        return "Stats reset"
