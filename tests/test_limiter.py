"""Tests for the point-consumption engine."""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from ratelimiter.adapters.rate_limit.base import CounterState
from ratelimiter.adapters.rate_limit.in_memory import InMemoryCounterStore
from ratelimiter.core.errors import CounterStoreError
from ratelimiter.core.limiter import ConsumeResult, RateLimiter


def _make_limiter(points: int = 5, duration: int = 60, start: float = 1000.0):
    clock = Mock(return_value=start)
    store = InMemoryCounterStore(clock=clock)
    limiter = RateLimiter(store, points=points, duration=duration, clock=clock)
    return limiter, store, clock


def _consume_many(limiter: RateLimiter, key: str, count: int) -> list[ConsumeResult]:
    async def _run() -> list[ConsumeResult]:
        return [await limiter.consume(key) for _ in range(count)]

    return asyncio.run(_run())


def test_remaining_points_decrease_to_zero() -> None:
    limiter, _, _ = _make_limiter(points=5)

    results = _consume_many(limiter, "A", 6)

    assert [r.allowed for r in results] == [True] * 5 + [False]
    assert [r.remaining_points for r in results] == [4, 3, 2, 1, 0, 0]
    assert results[-1].retry_after_seconds <= 60


def test_denied_for_rest_of_window_then_fresh() -> None:
    limiter, _, clock = _make_limiter(points=2, duration=10)

    results = _consume_many(limiter, "A", 5)
    assert [r.allowed for r in results] == [True, True, False, False, False]
    assert results[-1].consumed_points == 5

    clock.return_value = 1000.0 + results[-1].ms_before_next / 1000
    fresh = asyncio.run(limiter.consume("A"))

    assert fresh.allowed is True
    assert fresh.consumed_points == 1
    assert fresh.remaining_points == 1


def test_ms_before_next_counts_down_within_window() -> None:
    limiter, _, clock = _make_limiter(duration=60)

    first = asyncio.run(limiter.consume("A"))
    clock.return_value = 1012.5
    second = asyncio.run(limiter.consume("A"))

    assert first.ms_before_next == 60000
    assert second.ms_before_next == 47500


def test_keys_are_prefixed_in_store() -> None:
    store = AsyncMock()
    store.increment.return_value = CounterState(consumed_points=1, expires_at=1060.0)
    limiter = RateLimiter(store, points=5, duration=60, key_prefix="api", clock=lambda: 1000.0)

    asyncio.run(limiter.consume("10.0.0.1", points=2))

    store.increment.assert_awaited_once_with("api:10.0.0.1", 60, points=2)


def test_identical_configuration_yields_identical_results() -> None:
    first, _, _ = _make_limiter(points=3)
    second, _, _ = _make_limiter(points=3)

    assert _consume_many(first, "k", 5) == _consume_many(second, "k", 5)


def test_concurrent_consumptions_are_all_counted() -> None:
    limiter, store, _ = _make_limiter(points=10)
    concurrency = 25

    async def _burst() -> list[ConsumeResult]:
        return await asyncio.gather(*(limiter.consume("k") for _ in range(concurrency)))

    results = asyncio.run(_burst())

    assert sum(r.allowed for r in results) == 10
    assert asyncio.run(store.get("rate-limiter:k")).consumed_points == concurrency


def test_store_failure_propagates_distinct_from_denial() -> None:
    store = AsyncMock()
    store.increment.side_effect = CounterStoreError(code="store_unavailable", message="down")
    limiter = RateLimiter(store, points=1, duration=1)

    with pytest.raises(CounterStoreError):
        asyncio.run(limiter.consume("k"))


def test_get_and_reset() -> None:
    limiter, _, _ = _make_limiter(points=3)

    assert asyncio.run(limiter.get("k")) is None
    _consume_many(limiter, "k", 2)

    standing = asyncio.run(limiter.get("k"))
    assert standing.remaining_points == 1
    assert standing.consumed_points == 2

    assert asyncio.run(limiter.reset("k")) is True
    assert asyncio.run(limiter.consume("k")).remaining_points == 2


@pytest.mark.parametrize(
    "kwargs",
    [
        {"points": 0, "duration": 60},
        {"points": 1, "duration": 0},
    ],
)
def test_invalid_constructor_args(kwargs: dict) -> None:
    with pytest.raises(ValueError):
        RateLimiter(InMemoryCounterStore(), **kwargs)


def test_invalid_consume_points() -> None:
    limiter, _, _ = _make_limiter()

    with pytest.raises(ValueError):
        asyncio.run(limiter.consume("k", points=0))


def test_empty_key_is_an_ordinary_key() -> None:
    limiter, store, _ = _make_limiter(points=1)

    results = _consume_many(limiter, "", 2)

    assert [r.allowed for r in results] == [True, False]
    assert asyncio.run(store.get("rate-limiter:")).consumed_points == 2
