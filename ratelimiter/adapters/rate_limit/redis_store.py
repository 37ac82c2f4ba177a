"""Redis-backed counter store.

Counters are plain integer keys with a millisecond TTL.  A Lua script does
the increment and the "set expiry if newly created" step in one server-side
call, so concurrent workers sharing the Redis instance never lose updates
and a window can never be left without an expiry.

Typical usage::

    store = RedisCounterStore.from_connection(host="localhost", port=6379)
    state = await store.increment("rate-limiter:127.0.0.1", 60)
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from ratelimiter.adapters.rate_limit.base import CounterState, CounterStore
from ratelimiter.core.errors import CounterStoreError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Lua scripts
# ---------------------------------------------------------------------------

# Atomic increment with conditional expiry.
#
# KEYS[1]  - counter key
# ARGV[1]  - points to add
# ARGV[2]  - window length in milliseconds
#
# Returns {consumed, pttl_ms}.  PTTL is negative only when the key was just
# created by INCRBY (no expiry yet), which is when the window opens.
_LUA_INCREMENT = """
local key      = KEYS[1]
local points   = tonumber(ARGV[1])
local window   = tonumber(ARGV[2])

local consumed = redis.call('INCRBY', key, points)
local ttl      = redis.call('PTTL', key)
if ttl < 0 then
    redis.call('PEXPIRE', key, window)
    ttl = window
end
return {consumed, ttl}
"""

# Read-only snapshot.  Returns {consumed, pttl_ms} or {-1, -2} when absent.
_LUA_GET = """
local key   = KEYS[1]
local value = redis.call('GET', key)
if not value then
    return {-1, -2}
end
return {tonumber(value), redis.call('PTTL', key)}
"""

_STORE_ERRORS = (RedisError, OSError, asyncio.TimeoutError)


class RedisCounterStore(CounterStore):
    """Counter store delegating atomic increments to Redis."""

    def __init__(
        self,
        client: aioredis.Redis,
        *,
        clock: Callable[[], float] = time.time,
        owns_client: bool = False,
    ) -> None:
        """Initialize the store around an existing async Redis client.

        Args:
            client: ``redis.asyncio.Redis`` instance.
            clock: Time source returning UNIX time in seconds.
            owns_client: Close the client on :meth:`close` when True.
        """
        self._client = client
        self._clock = clock
        self._owns_client = owns_client
        self._increment_script = client.register_script(_LUA_INCREMENT)
        self._get_script = client.register_script(_LUA_GET)

    @classmethod
    def from_connection(
        cls,
        *,
        host: str,
        port: int = 6379,
        password: str | None = None,
        db: int = 0,
        socket_timeout: float | None = 1.0,
        clock: Callable[[], float] = time.time,
    ) -> "RedisCounterStore":
        """Build a store with its own client from connection parameters."""
        client = aioredis.Redis(
            host=host,
            port=port,
            password=password,
            db=db,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )
        return cls(client, clock=clock, owns_client=True)

    async def increment(self, key: str, duration: int, *, points: int = 1) -> CounterState:
        try:
            consumed, ttl_ms = await self._increment_script(
                keys=[key], args=[points, duration * 1000]
            )
        except _STORE_ERRORS as exc:
            raise self._store_error("increment", exc) from exc

        return CounterState(
            consumed_points=int(consumed),
            expires_at=self._clock() + max(0, int(ttl_ms)) / 1000,
        )

    async def get(self, key: str) -> CounterState | None:
        try:
            consumed, ttl_ms = await self._get_script(keys=[key], args=[])
        except _STORE_ERRORS as exc:
            raise self._store_error("get", exc) from exc

        if int(consumed) < 0 or int(ttl_ms) == -2:
            return None
        return CounterState(
            consumed_points=int(consumed),
            expires_at=self._clock() + max(0, int(ttl_ms)) / 1000,
        )

    async def delete(self, key: str) -> bool:
        try:
            removed = await self._client.delete(key)
        except _STORE_ERRORS as exc:
            raise self._store_error("delete", exc) from exc
        return bool(removed)

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    @staticmethod
    def _store_error(operation: str, exc: BaseException) -> CounterStoreError:
        logger.debug(
            "redis_store.operation_failed",
            extra={"operation": operation, "error_type": type(exc).__name__},
        )
        return CounterStoreError(
            code="store_unavailable",
            message=f"Redis counter store {operation} failed",
            details={"context": {"backend": "redis", "operation": operation}},
        )
