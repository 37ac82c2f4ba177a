"""Counter store adapters.

The limiter engine depends only on ``CounterStore``; the concrete backend
(in-process dict or Redis) is picked from configuration by
``create_counter_store``.
"""

from ratelimiter.adapters.rate_limit.base import CounterState, CounterStore
from ratelimiter.adapters.rate_limit.factory import create_counter_store
from ratelimiter.adapters.rate_limit.in_memory import InMemoryCounterStore
from ratelimiter.adapters.rate_limit.redis_store import RedisCounterStore

__all__ = [
    "CounterState",
    "CounterStore",
    "InMemoryCounterStore",
    "RedisCounterStore",
    "create_counter_store",
]
