"""Factory for choosing the counter store from limiter options."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ratelimiter.adapters.rate_limit.base import CounterStore
from ratelimiter.adapters.rate_limit.in_memory import InMemoryCounterStore
from ratelimiter.adapters.rate_limit.redis_store import RedisCounterStore
from ratelimiter.core.errors import ConfigurationAppError

if TYPE_CHECKING:
    from ratelimiter.core.options import RateLimiterOptions


def create_counter_store(options: "RateLimiterOptions") -> CounterStore:
    """Instantiate the counter store selected by ``options.store_kind``.

    An injected ``redis_client`` is used as-is and left open on shutdown;
    otherwise the store builds and owns its own client.

    Args:
        options: Validated limiter options.

    Returns:
        CounterStore: Configured store instance.

    Raises:
        ConfigurationAppError: If the Redis store lacks connection details.
    """
    kind = options.store_kind

    if kind == "memory":
        return InMemoryCounterStore()

    if kind == "redis":
        if options.redis_client is not None:
            return RedisCounterStore(options.redis_client)
        if options.redis is None or not options.redis.host:
            raise ConfigurationAppError(
                code="redis_connection_missing",
                message="Redis store requires redis_client or redis connection host",
            )
        return RedisCounterStore.from_connection(
            host=options.redis.host,
            port=options.redis.port,
            password=options.redis.password,
            db=options.redis.db,
            socket_timeout=options.redis.socket_timeout,
        )

    raise ConfigurationAppError(
        code="unknown_store_kind",
        message=f"Unknown counter store: '{kind}'. Supported stores: memory, redis",
    )
