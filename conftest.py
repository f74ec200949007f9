"""Shared test fixtures: an in-process async stand-in for the Redis client, and a controllable clock."""

import asyncio
import fnmatch
from typing import Optional

import pytest
import pytest_asyncio
from redis.exceptions import ConnectionError as RedisConnectionError

from cache_redis import RedisStore
from metrics import CacheMetrics


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeRedisClient:
    """
    Implements the subset of redis.asyncio.Redis the store uses.

    Entries expire against `clock`. Set `fail_with` to make every command
    raise, or `hang` to make every command block (exercises timeouts).
    """

    def __init__(self, clock: FakeClock) -> None:
        self.clock = clock
        self.data: dict[str, tuple[str, Optional[float]]] = {}
        self.fail_with: Optional[Exception] = None
        self.hang = False
        self.set_calls = 0
        self.closed = False
        self.used_memory = 1_048_576

    async def _gate(self) -> None:
        if self.hang:
            await asyncio.sleep(3600)
        if self.fail_with is not None:
            raise self.fail_with

    def _live_items(self) -> dict[str, str]:
        now = self.clock()
        for key in [k for k, (_, exp) in self.data.items() if exp is not None and exp <= now]:
            del self.data[key]
        return {k: v for k, (v, _) in self.data.items()}

    async def ping(self) -> bool:
        await self._gate()
        return True

    async def get(self, key: str) -> Optional[str]:
        await self._gate()
        return self._live_items().get(key)

    async def set(self, key: str, value: str, ex: Optional[int] = None) -> bool:
        self.set_calls += 1
        await self._gate()
        expires = self.clock() + ex if ex is not None else None
        self.data[key] = (value, expires)
        return True

    async def dbsize(self) -> int:
        await self._gate()
        return len(self._live_items())

    async def info(self, section: str = "default") -> dict:
        await self._gate()
        return {"used_memory": self.used_memory, "used_memory_human": "1.00M"}

    async def flushdb(self) -> bool:
        await self._gate()
        self.data.clear()
        return True

    async def scan(self, cursor: int = 0, match: Optional[str] = None, count: Optional[int] = None):
        await self._gate()
        keys = sorted(self._live_items())
        if match:
            keys = [k for k in keys if fnmatch.fnmatchcase(k, match)]
        return 0, keys

    async def delete(self, *keys: str) -> int:
        await self._gate()
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                removed += 1
        return removed

    async def aclose(self) -> None:
        self.closed = True


class FlakyClientFactory:
    """Hands out FakeRedisClients whose ping fails for the first `failures` clients."""

    def __init__(self, clock: FakeClock, failures: int = 0) -> None:
        self.clock = clock
        self.failures = failures
        self.created: list[FakeRedisClient] = []

    def __call__(self) -> FakeRedisClient:
        client = FakeRedisClient(self.clock)
        if len(self.created) < self.failures:
            client.fail_with = RedisConnectionError("Connection refused")
        self.created.append(client)
        return client

    def heal(self) -> None:
        self.failures = 0


def make_store(factory, **kwargs) -> RedisStore:
    params = dict(
        redis_url="redis://fake",
        ttl_seconds=600,
        key_namespace="summary:",
        timeout_sec=0.2,
        connect_attempts=3,
        backoff_step_ms=1,
        backoff_cap_ms=5,
        client_factory=factory,
    )
    params.update(kwargs)
    return RedisStore(**params)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def client_factory(clock) -> FlakyClientFactory:
    return FlakyClientFactory(clock)


@pytest_asyncio.fixture
async def store(client_factory) -> RedisStore:
    store = make_store(client_factory)
    await store.connect()
    yield store
    await store.disconnect()


@pytest.fixture
def fake_client(store) -> FakeRedisClient:
    return store.client


@pytest.fixture
def cache_metrics(clock) -> CacheMetrics:
    return CacheMetrics(clock=clock)


@pytest_asyncio.fixture
async def disconnected_store(clock) -> RedisStore:
    store = make_store(FlakyClientFactory(clock, failures=99))
    await store.connect()
    yield store
    await store.disconnect()
