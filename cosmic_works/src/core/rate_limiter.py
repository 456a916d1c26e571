"""
Cosmic Works - Rate Limiting
=============================
Token-bucket limiter used to space out calls to the embedding service.

A bucket of ``capacity`` tokens refills at ``rate`` tokens per second;
``acquire()`` takes one token, suspending the calling task until one is
available.  ``capacity=1`` with ``rate=1/interval`` gives a strict minimum
spacing of ``interval`` seconds between calls, which is what the
ingestion pipeline uses (500 ms by default).

The clock and the sleep function are injectable so tests can drive the
limiter without real wall-clock delay.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable

from cosmic_works.src.utils.logger import get_logger

logger = get_logger(__name__)

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[None]]


class TokenBucketLimiter:
    """
    Async token bucket.

    Parameters
    ----------
    rate
        Tokens added per second.  Must be positive.
    capacity
        Maximum number of tokens held; also the burst size.
    clock
        Monotonic time source in seconds.  Defaults to ``time.monotonic``.
    sleep
        Coroutine used to wait.  Defaults to ``asyncio.sleep``.
    """

    __slots__ = ("_rate", "_capacity", "_tokens", "_clock", "_sleep", "_updated_at", "_lock")

    def __init__(self, rate: float, capacity: int = 1, clock: Clock | None = None, sleep: Sleep | None = None) -> None:
        if rate <= 0:
            raise ValueError(f"rate must be > 0, got {rate}")
        if capacity < 1:
            raise ValueError(f"capacity must be ≥ 1, got {capacity}")
        self._rate = rate
        self._capacity = capacity
        self._clock: Clock = clock or time.monotonic
        self._sleep: Sleep = sleep or asyncio.sleep
        self._tokens = float(capacity)
        self._updated_at = self._clock()
        self._lock = asyncio.Lock()


    @classmethod
    def fixed_interval(cls, interval: float, clock: Clock | None = None, sleep: Sleep | None = None) -> TokenBucketLimiter | NoopLimiter:
        """Limiter enforcing at least *interval* seconds between acquisitions (``0`` → no limit)."""
        if interval <= 0:
            return NoopLimiter()
        return cls(rate=1.0 / interval, capacity=1, clock=clock, sleep=sleep)


    async def acquire(self) -> None:
        """Take one token, waiting for the bucket to refill if it is empty."""
        async with self._lock:
            while True:
                self._refill()
                if self._tokens >= 1:
                    self._tokens -= 1
                    return
                wait = (1 - self._tokens) / self._rate
                logger.debug("[RATE] Bucket empty — waiting %.3fs.", wait)
                await self._sleep(wait)


    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(now - self._updated_at, 0.0)
        self._tokens = min(self._capacity, self._tokens + elapsed * self._rate)
        self._updated_at = now


    @property
    def available(self) -> float:
        """Tokens currently in the bucket (after refill)."""
        self._refill()
        return self._tokens


class NoopLimiter:
    """Limiter that never waits."""

    __slots__ = ()

    async def acquire(self) -> None:
        return None
