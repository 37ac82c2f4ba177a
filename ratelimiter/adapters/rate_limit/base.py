"""Counter store interface.

The engine talks to this abstraction only, so the in-process store and the
Redis store are interchangeable without touching request handling code.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class CounterState:
    """Snapshot of a key's counter after an operation.

    Attributes:
        consumed_points: Points consumed in the current window.
        expires_at: UNIX epoch seconds when the window resets.
    """

    consumed_points: int
    expires_at: float


class CounterStore(ABC):
    """Interface for key -> counter storage with atomic increment-and-expire."""

    @abstractmethod
    async def increment(self, key: str, duration: int, *, points: int = 1) -> CounterState:
        """Atomically add ``points`` to ``key``, opening a window if needed.

        A missing or expired counter is recreated starting from zero with
        ``expires_at = now + duration``; an existing one keeps its expiry.

        Args:
            key: Fully prefixed store key.
            duration: Window length in seconds.
            points: Points to add (default 1).

        Returns:
            CounterState after the increment.

        Raises:
            CounterStoreError: If the backend cannot be reached.
        """
        raise NotImplementedError

    @abstractmethod
    async def get(self, key: str) -> CounterState | None:
        """Return the live counter for ``key`` or None when absent/expired."""
        raise NotImplementedError

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Drop the counter for ``key``. Returns True if one existed."""
        raise NotImplementedError

    async def close(self) -> None:
        """Release backend resources (no-op by default)."""
        return None
