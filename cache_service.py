"""
Summary Cache Service - lookup-or-store for page summaries and verdicts.

RESPONSIBILITY:
    Fingerprint content, read/write the store, count hits and misses.
    Generation itself happens elsewhere (the extension calls /summarize or
    its own model on a miss, then stores the result here).

FAILURE MODEL:
    The cache is an optimization, never a hard dependency.
    - lookup: store down or slow -> logged, reported as a miss
    - store: store down or write rejected -> StoreWriteFailed, no retry
    - empty content/summary -> ValidationError before any store I/O
"""

import logging
from dataclasses import dataclass
from typing import Optional

from cache_redis import RedisStore
from exceptions import StoreUnavailable, StoreWriteFailed, ValidationError
from fingerprint import DEFAULT_NAMESPACE, fingerprint, well_formed
from metrics import CacheMetrics
import metrics

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LookupResult:
    hit: bool
    value: Optional[str] = None


class SummaryCacheService:
    """
    Content-addressed cache over a shared RedisStore.

    Dependencies are injected so tests can pass a store backed by a fake
    client and a fresh CacheMetrics per test.
    """

    def __init__(
        self,
        store: RedisStore,
        cache_metrics: CacheMetrics,
        namespace: str = DEFAULT_NAMESPACE,
    ) -> None:
        self.redis_store = store
        self.metrics = cache_metrics
        self.namespace = namespace

    def key_for(self, content: str) -> str:
        return fingerprint(content, self.namespace)

    async def lookup(self, content: Optional[str]) -> LookupResult:
        """
        Return the cached value for content, if any.

        Every accepted call counts exactly one hit or one miss. A store
        failure counts as a miss.
        """
        if not content:
            raise ValidationError("content is required")

        key = self.key_for(content)
        try:
            cached = await self.redis_store.get(key)
        except StoreUnavailable as e:
            logger.warning(f"Cache lookup degraded to miss for key {key[:30]}...: {e}")
            cached = None

        if cached is not None:
            self.metrics.record_hit()
            logger.info(f"🟢 Cache HIT for key {key[:30]}...")
            return LookupResult(hit=True, value=cached)

        self.metrics.record_miss()
        logger.info(f"🔴 Cache MISS for key {key[:30]}...")
        return LookupResult(hit=False)

    async def store(self, content: Optional[str], value: Optional[str]) -> None:
        """
        Cache value for content with the store TTL.

        Same content stored twice: last write wins and the TTL restarts.
        """
        if not content or not value:
            raise ValidationError("content and summary are required")

        key = self.key_for(content)
        try:
            accepted = await self.redis_store.set(key, well_formed(value))
        except StoreUnavailable as e:
            metrics.record_write("failed")
            raise StoreWriteFailed(f"cache write failed for key {key[:30]}...: {e}") from e

        if not accepted:
            metrics.record_write("failed")
            raise StoreWriteFailed(f"store rejected write for key {key[:30]}...")

        metrics.record_write("stored")
        logger.info(f"💾 Cached summary for key {key[:30]}... (TTL: {self.redis_store.ttl_seconds}s)")
