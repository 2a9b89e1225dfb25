"""
Write Rate Limiting

Backpressure for graph writes. The GraphUpdater awaits `acquire()` before
every vertex/edge write, so the throttling policy lives here and not in the
write loop.

Limiters hold per-instance state only. IngestionPipeline creates a fresh
limiter per document run unless one is injected, so throttling holds per run
rather than globally.

Example:
    >>> limiter = FixedIntervalRateLimiter(0.1)
    >>> for vertex in vertices:
    ...     await limiter.acquire()
    ...     await graph.upsert_vertex(vertex, document_id)
"""

from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod


class RateLimiter(ABC):
    """Abstract write-rate limiter."""

    @abstractmethod
    async def acquire(self) -> None:
        """Wait until one more write may be issued."""
        ...


class NoopRateLimiter(RateLimiter):
    """Never waits. For tests and stores without write limits."""

    async def acquire(self) -> None:
        return None


class FixedIntervalRateLimiter(RateLimiter):
    """
    Enforces a minimum interval between consecutive acquisitions.

    The first acquisition returns immediately; each later one waits until
    `interval_s` has passed since the previous one.
    """

    def __init__(self, interval_s: float = 0.1) -> None:
        if interval_s < 0:
            raise ValueError(f"interval_s must be >= 0, got {interval_s}")
        self.interval_s = interval_s
        self._last: float | None = None
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        async with self._lock:
            now = time.monotonic()
            if self._last is not None:
                wait = self._last + self.interval_s - now
                if wait > 0:
                    await asyncio.sleep(wait)
                    now = time.monotonic()
            self._last = now


class TokenBucketRateLimiter(RateLimiter):
    """
    Token bucket: allows bursts of up to `capacity` writes, refilled at
    `rate` tokens per second.
    """

    def __init__(self, rate: float, capacity: int = 1) -> None:
        if rate <= 0:
            raise ValueError(f"rate must be > 0, got {rate}")
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self.rate = rate
        self.capacity = capacity
        self._tokens = float(capacity)
        self._updated = time.monotonic()
        self._lock = asyncio.Lock()

    def _refill(self) -> None:
        now = time.monotonic()
        self._tokens = min(self.capacity, self._tokens + (now - self._updated) * self.rate)
        self._updated = now

    async def acquire(self) -> None:
        async with self._lock:
            self._refill()
            if self._tokens < 1:
                await asyncio.sleep((1 - self._tokens) / self.rate)
                self._refill()
            self._tokens -= 1
