"""Behavioral tests for the Redis counter scripts.

The Lua scripts run inside fakeredis (with its Lua engine), so TTL handling
is checked as Redis itself would apply it.  No live Redis is required.
"""

from __future__ import annotations

import asyncio

import fakeredis

from ratelimiter.adapters.rate_limit.redis_store import RedisCounterStore


def _run(scenario) -> None:
    async def _main() -> None:
        client = fakeredis.FakeAsyncRedis()
        try:
            await scenario(client, RedisCounterStore(client))
        finally:
            await client.aclose()

    asyncio.run(_main())


def test_first_increment_opens_window_with_expiry() -> None:
    async def scenario(client, store: RedisCounterStore) -> None:
        state = await store.increment("rl:a", 60, points=2)

        assert state.consumed_points == 2
        assert 59_000 < await client.pttl("rl:a") <= 60_000

    _run(scenario)


def test_later_increments_keep_window_ttl() -> None:
    async def scenario(client, store: RedisCounterStore) -> None:
        await store.increment("rl:a", 60)
        state = await store.increment("rl:a", 120)

        assert state.consumed_points == 2
        # The second call's longer duration must not extend the open window
        assert await client.pttl("rl:a") <= 60_000

    _run(scenario)


def test_key_without_ttl_gets_one() -> None:
    async def scenario(client, store: RedisCounterStore) -> None:
        await client.set("rl:a", 5)

        state = await store.increment("rl:a", 30)

        assert state.consumed_points == 6
        assert 29_000 < await client.pttl("rl:a") <= 30_000

    _run(scenario)


def test_expired_window_starts_over() -> None:
    async def scenario(client, store: RedisCounterStore) -> None:
        await store.increment("rl:a", 60, points=3)
        await client.pexpire("rl:a", 1)
        await asyncio.sleep(0.05)

        state = await store.increment("rl:a", 60)

        assert state.consumed_points == 1
        assert await client.pttl("rl:a") > 59_000

    _run(scenario)


def test_get_reads_without_consuming() -> None:
    async def scenario(client, store: RedisCounterStore) -> None:
        assert await store.get("rl:missing") is None

        await store.increment("rl:a", 60, points=4)
        state = await store.get("rl:a")

        assert state is not None
        assert state.consumed_points == 4
        assert int(await client.get("rl:a")) == 4

    _run(scenario)


def test_get_script_reports_missing_key_sentinel() -> None:
    async def scenario(client, store: RedisCounterStore) -> None:
        result = await store._get_script(keys=["rl:missing"], args=[])

        assert [int(v) for v in result] == [-1, -2]

    _run(scenario)


def test_delete_removes_counter() -> None:
    async def scenario(client, store: RedisCounterStore) -> None:
        await store.increment("rl:a", 60)

        assert await store.delete("rl:a") is True
        assert await store.delete("rl:a") is False
        assert await client.exists("rl:a") == 0

    _run(scenario)
