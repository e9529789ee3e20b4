"""Deduplicating, rate-limited work queue keyed by pod key.

Semantics:

* ``add(key)`` is idempotent while *key* is pending: a key is queued at most
  once no matter how many times it is added before a worker picks it up.
* ``get()`` hands a key to exactly one worker and marks it in flight.  A key
  added while in flight is parked as dirty and re-queued by ``done(key)``, so
  the same key is never processed by two workers at once and no update is
  lost.
* ``add_rate_limited(key)`` re-adds *key* after a delay chosen by the rate
  limiter; ``num_requeues`` / ``forget`` expose and reset its history.
* ``shut_down()`` stops handing out keys; ``shut_down_with_drain()`` also
  waits until every in-flight key has been marked done.

All state lives in one event loop and is only touched between awaits.
"""

from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod
from collections import deque

import structlog

_log = structlog.get_logger(component="analyst.queue")

_BASE_DELAY_S = 0.005
_MAX_DELAY_S = 1000.0
_BUCKET_QPS = 10.0
_BUCKET_BURST = 100


class QueueShutDownError(Exception):
    """Raised by ``WorkQueue.get()`` once the queue is shut down."""


# ---------------------------------------------------------------------------
# Rate limiters
# ---------------------------------------------------------------------------


class RateLimiter(ABC):
    """Decides how long a key must wait before it is re-queued."""

    @abstractmethod
    def when(self, key: str) -> float:
        """Return the delay in seconds for the next retry of *key*."""

    @abstractmethod
    def forget(self, key: str) -> None:
        """Drop all retry history for *key*."""

    @abstractmethod
    def num_requeues(self, key: str) -> int:
        """Number of times *key* has been rate-limited since the last forget."""


class ExponentialBackoffRateLimiter(RateLimiter):
    """Per-key ``base * 2**failures`` back-off, capped at *max_delay*."""

    def __init__(self, base_delay: float = _BASE_DELAY_S, max_delay: float = _MAX_DELAY_S) -> None:
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._failures: dict[str, int] = {}

    def when(self, key: str) -> float:
        exp = self._failures.get(key, 0)
        self._failures[key] = exp + 1
        # Guard against float overflow for very long failure streaks
        if exp > 62:
            return self._max_delay
        return min(self._base_delay * (2**exp), self._max_delay)

    def forget(self, key: str) -> None:
        self._failures.pop(key, None)

    def num_requeues(self, key: str) -> int:
        return self._failures.get(key, 0)


class TokenBucketRateLimiter(RateLimiter):
    """Overall token bucket: *qps* sustained, *burst* immediately available."""

    def __init__(self, qps: float = _BUCKET_QPS, burst: int = _BUCKET_BURST) -> None:
        self._qps = qps
        self._burst = burst
        self._tokens = float(burst)
        self._last = time.monotonic()

    def when(self, key: str) -> float:
        now = time.monotonic()
        self._tokens = min(float(self._burst), self._tokens + (now - self._last) * self._qps)
        self._last = now
        # Reserve a token even when it is not available yet
        self._tokens -= 1.0
        if self._tokens >= 0:
            return 0.0
        return -self._tokens / self._qps

    def forget(self, key: str) -> None:
        return None

    def num_requeues(self, key: str) -> int:
        return 0


class MaxOfRateLimiter(RateLimiter):
    """Combines limiters; the longest delay and highest requeue count win."""

    def __init__(self, *limiters: RateLimiter) -> None:
        if not limiters:
            raise ValueError("MaxOfRateLimiter needs at least one limiter")
        self._limiters = limiters

    def when(self, key: str) -> float:
        return max(limiter.when(key) for limiter in self._limiters)

    def forget(self, key: str) -> None:
        for limiter in self._limiters:
            limiter.forget(key)

    def num_requeues(self, key: str) -> int:
        return max(limiter.num_requeues(key) for limiter in self._limiters)


def default_rate_limiter() -> RateLimiter:
    """Per-key exponential back-off combined with an overall token bucket."""
    return MaxOfRateLimiter(ExponentialBackoffRateLimiter(), TokenBucketRateLimiter())


# ---------------------------------------------------------------------------
# Work queue
# ---------------------------------------------------------------------------


class WorkQueue:
    """Rate-limited work queue with per-key deduplication.

    Args:
        rate_limiter: Back-off policy for ``add_rate_limited``.  Defaults to
                      ``default_rate_limiter()``.
    """

    def __init__(self, rate_limiter: RateLimiter | None = None) -> None:
        self._rate_limiter = rate_limiter or default_rate_limiter()
        self._queue: deque[str] = deque()
        # Keys that need processing (queued, or re-added while in flight)
        self._dirty: set[str] = set()
        # Keys currently handed out to a worker
        self._processing: set[str] = set()
        self._timers: dict[str, asyncio.TimerHandle] = {}
        self._wakeup = asyncio.Event()
        self._idle = asyncio.Event()
        self._idle.set()
        self._shutting_down = False

    def __len__(self) -> int:
        return len(self._queue)

    @property
    def shutting_down(self) -> bool:
        return self._shutting_down

    def add(self, key: str) -> None:
        """Mark *key* as needing processing."""
        if self._shutting_down:
            return
        if key in self._dirty:
            return
        self._dirty.add(key)
        if key in self._processing:
            return
        self._queue.append(key)
        self._wakeup.set()

    def add_after(self, key: str, delay: float) -> None:
        """Add *key* once *delay* seconds have elapsed."""
        if self._shutting_down:
            return
        if delay <= 0:
            self.add(key)
            return
        loop = asyncio.get_running_loop()
        existing = self._timers.get(key)
        if existing is not None:
            # Keep the earlier of the two deadlines
            if existing.when() <= loop.time() + delay:
                return
            existing.cancel()
        self._timers[key] = loop.call_later(delay, self._fire_timer, key)

    def add_rate_limited(self, key: str) -> None:
        """Re-add *key* after the rate limiter's back-off delay."""
        delay = self._rate_limiter.when(key)
        _log.debug("key_requeued", key=key, delay_s=round(delay, 3), requeues=self.num_requeues(key))
        self.add_after(key, delay)

    def forget(self, key: str) -> None:
        """Clear the retry history of *key*."""
        self._rate_limiter.forget(key)

    def num_requeues(self, key: str) -> int:
        return self._rate_limiter.num_requeues(key)

    async def get(self) -> str:
        """Block until a key is available and mark it in flight.

        Raises:
            QueueShutDownError: the queue is shut down.
        """
        while True:
            if self._shutting_down:
                raise QueueShutDownError("work queue is shut down")
            if self._queue:
                key = self._queue.popleft()
                self._processing.add(key)
                self._dirty.discard(key)
                self._idle.clear()
                return key
            self._wakeup.clear()
            await self._wakeup.wait()

    def done(self, key: str) -> None:
        """Mark *key* as finished; re-queue it if it was re-added meanwhile."""
        self._processing.discard(key)
        if not self._processing:
            self._idle.set()
        if key in self._dirty and not self._shutting_down:
            self._queue.append(key)
            self._wakeup.set()

    def shut_down(self) -> None:
        """Stop handing out keys and wake every blocked ``get()``."""
        self._shutting_down = True
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()
        self._wakeup.set()

    async def shut_down_with_drain(self) -> None:
        """Shut down, then wait until every in-flight key is marked done."""
        self.shut_down()
        await self._idle.wait()

    def _fire_timer(self, key: str) -> None:
        self._timers.pop(key, None)
        self.add(key)
