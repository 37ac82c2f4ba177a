"""In-process counter store.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: one lock guards the whole mapping, so increments are atomic
  whether the host runs handlers on an event loop or a thread pool.
- Expired entries are dropped lazily on access and by a periodic sweep that
  piggybacks on writes; no background thread is started.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable

from ratelimiter.adapters.rate_limit.base import CounterState, CounterStore


@dataclass
class _Entry:
    consumed: int
    expires_at: float


class InMemoryCounterStore(CounterStore):
    """Counter store backed by a dict held in process memory."""

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.time,
        sweep_interval_seconds: float = 60.0,
    ) -> None:
        """Initialize the store.

        Args:
            clock: Time source returning UNIX time in seconds.
            sweep_interval_seconds: Minimum spacing between expiry sweeps.

        Raises:
            ValueError: If sweep_interval_seconds is negative.
        """
        if sweep_interval_seconds < 0:
            raise ValueError("sweep_interval_seconds must be >= 0")

        self._clock = clock
        self._sweep_interval = sweep_interval_seconds
        self._lock = threading.RLock()
        self._entries: dict[str, _Entry] = {}
        self._next_sweep_at = clock() + sweep_interval_seconds

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    async def increment(self, key: str, duration: int, *, points: int = 1) -> CounterState:
        now = self._clock()

        with self._lock:
            self._maybe_sweep_locked(now)

            entry = self._entries.get(key)
            if entry is None or now >= entry.expires_at:
                entry = _Entry(consumed=points, expires_at=now + duration)
                self._entries[key] = entry
            else:
                entry.consumed += points

            return CounterState(consumed_points=entry.consumed, expires_at=entry.expires_at)

    async def get(self, key: str) -> CounterState | None:
        now = self._clock()

        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if now >= entry.expires_at:
                del self._entries[key]
                return None
            return CounterState(consumed_points=entry.consumed, expires_at=entry.expires_at)

    async def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def _maybe_sweep_locked(self, now: float) -> None:
        if now < self._next_sweep_at:
            return

        expired = [k for k, entry in self._entries.items() if now >= entry.expires_at]
        for key in expired:
            del self._entries[key]
        self._next_sweep_at = now + self._sweep_interval
