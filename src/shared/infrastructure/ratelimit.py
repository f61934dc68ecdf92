"""
Rate Limiting
=============

Rate limiter interface and an in-process fixed-window implementation.

The in-process limiter only holds per-worker state. Deployments running
several workers should supply a shared implementation of IRateLimiter.
"""

import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of a rate limit check."""
    success: bool
    limit: int
    remaining: int
    reset: float  # epoch seconds when the window closes

    @property
    def retry_after(self) -> int:
        return max(0, int(self.reset - time.time()) + 1)


class IRateLimiter(ABC):
    """Interface for rate limiters."""

    @abstractmethod
    async def limit(
        self,
        key: str,
        limit: Optional[int] = None,
        window_seconds: Optional[int] = None
    ) -> RateLimitResult:
        """
        Count one hit against key and report whether it is allowed.

        limit and window_seconds override the limiter defaults for this key.
        """


class InMemoryRateLimiter(IRateLimiter):
    """Fixed-window counter keyed by caller."""

    def __init__(
        self,
        limit: int = 20,
        window_seconds: int = 300,
        clock: Callable[[], float] = time.time,
        sweep_seconds: int = 60,
    ):
        self._limit = limit
        self._window = window_seconds
        self._clock = clock
        self._sweep_seconds = sweep_seconds
        self._next_sweep = 0.0
        self._buckets: Dict[str, Tuple[int, float]] = {}
        self._lock = threading.Lock()

    async def limit(
        self,
        key: str,
        limit: Optional[int] = None,
        window_seconds: Optional[int] = None
    ) -> RateLimitResult:
        max_hits = limit if limit is not None else self._limit
        window = window_seconds if window_seconds is not None else self._window
        now = self._clock()

        with self._lock:
            if now >= self._next_sweep:
                self._sweep(now)
            count, reset = self._buckets.get(key, (0, 0.0))
            if now >= reset:
                count, reset = 0, now + window
            count += 1
            self._buckets[key] = (count, reset)

        return RateLimitResult(
            success=count <= max_hits,
            limit=max_hits,
            remaining=max(0, max_hits - count),
            reset=reset,
        )

    def _sweep(self, now: float) -> None:
        # Caller holds the lock
        expired = [key for key, (_, reset) in self._buckets.items() if now >= reset]
        for key in expired:
            del self._buckets[key]
        self._next_sweep = now + self._sweep_seconds

    def __len__(self) -> int:
        with self._lock:
            return len(self._buckets)

    def reset(self) -> None:
        with self._lock:
            self._buckets.clear()
