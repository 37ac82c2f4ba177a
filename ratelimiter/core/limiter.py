"""Point-consumption engine.

``RateLimiter.consume`` charges points against a key's counter and reports
whether the caller is still within budget.  Denial is an ordinary result
value; only a failing store raises (``CounterStoreError``).
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

from ratelimiter.adapters.rate_limit.base import CounterState, CounterStore


@dataclass(frozen=True)
class ConsumeResult:
    """Outcome of a consumption.

    Attributes:
        allowed: Whether the consumption stayed within ``points``.
        remaining_points: Points left in the window (never negative).
        ms_before_next: Milliseconds until the window resets.
        consumed_points: Points recorded by the store, may exceed the limit.
    """

    allowed: bool
    remaining_points: int
    ms_before_next: int
    consumed_points: int

    @property
    def retry_after_seconds(self) -> int:
        return int(math.ceil(self.ms_before_next / 1000))

    def reset_at(self, now: datetime | None = None) -> datetime:
        """Absolute UTC time the window resets."""
        base = now or datetime.now(timezone.utc)
        return base + timedelta(milliseconds=self.ms_before_next)


class RateLimiter:
    """Applies a points-per-duration budget to keys held in a CounterStore."""

    def __init__(
        self,
        store: CounterStore,
        *,
        points: int,
        duration: int,
        key_prefix: str = "rate-limiter",
        clock: Callable[[], float] = time.time,
    ) -> None:
        if points < 1:
            raise ValueError("points must be >= 1")
        if duration < 1:
            raise ValueError("duration must be >= 1")

        self.store = store
        self.points = points
        self.duration = duration
        self.key_prefix = key_prefix
        self._clock = clock

    def _prefixed(self, key: str) -> str:
        return f"{self.key_prefix}:{key}" if self.key_prefix else key

    def _to_result(self, state: CounterState) -> ConsumeResult:
        ms_before_next = max(0, int(round((state.expires_at - self._clock()) * 1000)))
        return ConsumeResult(
            allowed=state.consumed_points <= self.points,
            remaining_points=max(0, self.points - state.consumed_points),
            ms_before_next=ms_before_next,
            consumed_points=state.consumed_points,
        )

    async def consume(self, key: str, *, points: int = 1) -> ConsumeResult:
        """Consume ``points`` from ``key``'s budget.

        Args:
            key: Caller identity (unprefixed).
            points: Points to charge (default 1).

        Returns:
            ConsumeResult, allowed or not.

        Raises:
            ValueError: If points is not positive.
            CounterStoreError: If the store backend fails.
        """
        if points < 1:
            raise ValueError("points must be >= 1")

        state = await self.store.increment(self._prefixed(key), self.duration, points=points)
        return self._to_result(state)

    async def get(self, key: str) -> ConsumeResult | None:
        """Current standing for ``key`` without consuming, None if no window is open."""
        state = await self.store.get(self._prefixed(key))
        if state is None:
            return None
        return self._to_result(state)

    async def reset(self, key: str) -> bool:
        """Forget ``key``'s counter so its next request opens a fresh window."""
        return await self.store.delete(self._prefixed(key))
