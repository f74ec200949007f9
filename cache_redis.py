"""PostPolice Redis/Valkey store - shared async client, TTL entries, and connection state machine."""

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from exceptions import StoreUnavailable

logger = logging.getLogger(__name__)

# Anything the client can raise for a dead/slow store. TimeoutError covers asyncio.wait_for.
STORE_ERRORS = (RedisError, OSError, asyncio.TimeoutError)


class ConnectionState(Enum):
    """Store connection state machine: DISCONNECTED -> CONNECTING -> CONNECTED | FAILED."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FAILED = "failed"          # Retries exhausted - cache disabled until reconnect


class RedisStore:
    """
    Redis-backed key-value store with per-entry TTL.

    One client per process, created by connect() at startup and shared by
    every request. Every operation is bounded by `timeout_sec`; connectivity
    errors and timeouts surface as StoreUnavailable so callers can degrade.
    """

    def __init__(
        self,
        redis_url: str,
        ttl_seconds: int = 600,
        key_namespace: str = "summary:",
        timeout_sec: float = 2.0,
        connect_attempts: int = 3,
        backoff_step_ms: int = 200,
        backoff_cap_ms: int = 2000,
        reconnect_on_demand: bool = False,
        client_factory: Optional[Callable[[], Any]] = None,
    ) -> None:
        """Initialize store settings. No network I/O happens until connect()."""
        self.redis_url = redis_url
        self.ttl_seconds = ttl_seconds
        self.key_namespace = key_namespace
        self.timeout_sec = timeout_sec
        self.connect_attempts = connect_attempts
        self.backoff_step_ms = backoff_step_ms
        self.backoff_cap_ms = backoff_cap_ms
        self.reconnect_on_demand = reconnect_on_demand
        self._client_factory = client_factory or self._default_client

        self.client: Optional[redis.Redis] = None
        self.state = ConnectionState.DISCONNECTED
        self.attempts_made = 0
        self.last_error: Optional[str] = None
        self._connect_lock = asyncio.Lock()

    def _default_client(self) -> redis.Redis:
        return redis.from_url(
            self.redis_url,
            encoding="utf-8",
            decode_responses=True,
            socket_timeout=self.timeout_sec,
            socket_connect_timeout=self.timeout_sec,
        )

    @property
    def is_connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED and self.client is not None

    def backoff_delay(self, attempt: int) -> float:
        """Delay in seconds after failed attempt N (1-based): linear, capped."""
        return min(attempt * self.backoff_step_ms, self.backoff_cap_ms) / 1000

    async def connect(self) -> ConnectionState:
        """
        Establish the shared connection with bounded retries.

        Never raises: on exhaustion the state becomes FAILED and every
        later operation raises StoreUnavailable (callers degrade).
        """
        async with self._connect_lock:
            if self.is_connected:
                return self.state

            self.state = ConnectionState.CONNECTING
            for attempt in range(1, self.connect_attempts + 1):
                self.attempts_made = attempt
                client = None
                try:
                    client = self._client_factory()
                    await asyncio.wait_for(client.ping(), timeout=self.timeout_sec)
                except ValueError as e:
                    # Malformed URL: retrying cannot help
                    self.last_error = f"{type(e).__name__}: {e}"
                    logger.warning(f"Valkey client could not be created: {self.last_error}")
                    break
                except STORE_ERRORS as e:
                    self.last_error = f"{type(e).__name__}: {e}"
                    logger.warning(f"Valkey connection attempt {attempt}/{self.connect_attempts} failed: {self.last_error}")
                    await self._close_quietly(client)
                    if attempt < self.connect_attempts:
                        await asyncio.sleep(self.backoff_delay(attempt))
                    continue

                self.client = client
                self.state = ConnectionState.CONNECTED
                self.last_error = None
                logger.info(f"✅ Connected to Valkey (attempt {attempt})")
                return self.state

            self.state = ConnectionState.FAILED
            logger.error(
                f"❌ Valkey connection failed after {self.attempts_made} attempts: {self.last_error} "
                f"- cache disabled"
            )
            return self.state

    async def disconnect(self) -> None:
        """Close the shared connection."""
        if self.client is not None:
            await self._close_quietly(self.client)
            self.client = None
            logger.info("Valkey connection closed")
        self.state = ConnectionState.DISCONNECTED

    async def _close_quietly(self, client: Any) -> None:
        if client is None:
            return
        try:
            await client.aclose()
        except STORE_ERRORS as e:
            logger.debug(f"Ignoring error while closing Valkey client: {e}")

    async def _require_client(self) -> redis.Redis:
        if not self.is_connected and self.reconnect_on_demand and self.state is not ConnectionState.CONNECTING:
            logger.info("Store not connected, attempting on-demand reconnect")
            await self.connect()

        if not self.is_connected:
            raise StoreUnavailable(f"store not connected (state={self.state.value})")
        return self.client

    async def _call(self, operation: str, fn: Callable[[redis.Redis], Awaitable[Any]]) -> Any:
        """Run one store command under the timeout, translating failures to StoreUnavailable."""
        client = await self._require_client()
        try:
            return await asyncio.wait_for(fn(client), timeout=self.timeout_sec)
        except STORE_ERRORS as e:
            logger.error(f"Valkey {operation} error: {type(e).__name__}: {e}")
            raise StoreUnavailable(f"{operation} failed: {type(e).__name__}: {e}") from e

    async def ping(self) -> bool:
        """Liveness probe. Never raises."""
        try:
            return bool(await self._call("PING", lambda c: c.ping()))
        except StoreUnavailable:
            return False

    async def get(self, key: str) -> Optional[str]:
        """Return the stored value, or None if absent/expired."""
        return await self._call("GET", lambda c: c.get(key))

    async def set(self, key: str, value: str) -> bool:
        """Write value with the store TTL. Overwrites and resets TTL. Returns whether the store accepted it."""
        return bool(await self._call("SET", lambda c: c.set(key, value, ex=self.ttl_seconds)))

    async def key_count(self) -> int:
        """Number of keys in the whole store (DBSIZE)."""
        return int(await self._call("DBSIZE", lambda c: c.dbsize()))

    async def memory_usage(self) -> dict:
        """Memory report from INFO memory: {"used_memory": int, "used_memory_human": str}."""
        info = await self._call("INFO", lambda c: c.info("memory"))
        used = int(info.get("used_memory", 0))
        return {
            "used_memory": used,
            "used_memory_human": info.get("used_memory_human") or f"{used}B",
        }

    async def purge_all(self) -> None:
        """Delete every key in the store (FLUSHDB). Not limited to this namespace."""
        await self._call("FLUSHDB", lambda c: c.flushdb())
        logger.info("Store flushed (all keys)")

    async def purge_namespace(self) -> int:
        """Scan-and-delete keys under key_namespace only. Returns number of keys deleted."""
        pattern = f"{self.key_namespace}*"
        cursor = 0
        deleted = 0

        while True:
            cursor, keys = await self._call("SCAN", lambda c: c.scan(cursor, match=pattern, count=100))
            if keys:
                deleted += await self._call("DEL", lambda c: c.delete(*keys))
            if cursor == 0:
                break

        logger.info(f"Cleared {deleted} cache entries under {pattern}")
        return deleted
