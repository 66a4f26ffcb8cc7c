"""Admission control for provider dispatches.

Bounds both the number of in-flight requests and the number of requests
admitted in a trailing window (60 seconds by default). Waiters are queued
as futures and served strictly first-in first-out; nobody polls.
"""

import asyncio
import time
from collections import deque
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Deque, Dict, Optional

from seqchat.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_REQUESTS_PER_MINUTE = 60
DEFAULT_CONCURRENCY_LIMIT = 5
DEFAULT_WINDOW_SECONDS = 60.0


class RateLimiter:
    """FIFO rate limiter shared by every dispatcher on one event loop.

    All counters are mutated on the event loop thread through ``acquire`` /
    ``try_acquire`` / ``release`` only.
    """

    def __init__(
        self,
        requests_per_minute: int = DEFAULT_REQUESTS_PER_MINUTE,
        concurrency_limit: int = DEFAULT_CONCURRENCY_LIMIT,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        if requests_per_minute < 1:
            raise ValueError("requests_per_minute must be >= 1")
        if concurrency_limit < 1:
            raise ValueError("concurrency_limit must be >= 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")

        self.requests_per_minute = requests_per_minute
        self.concurrency_limit = concurrency_limit
        self.window_seconds = window_seconds
        self._clock = clock

        self._active_requests = 0
        self._request_timestamps: Deque[float] = deque()
        self._waiters: Deque[asyncio.Future] = deque()
        self._wake_handle: Optional[asyncio.TimerHandle] = None

        self.total_admitted = 0
        self.peak_active = 0

    @property
    def active_requests(self) -> int:
        return self._active_requests

    @property
    def queued(self) -> int:
        return sum(1 for waiter in self._waiters if not waiter.done())

    def _prune(self, now: float) -> None:
        cutoff = now - self.window_seconds
        while self._request_timestamps and self._request_timestamps[0] <= cutoff:
            self._request_timestamps.popleft()

    def _has_capacity(self, now: float) -> bool:
        self._prune(now)
        return (
            self._active_requests < self.concurrency_limit
            and len(self._request_timestamps) < self.requests_per_minute
        )

    def _admit(self, now: float) -> None:
        self._active_requests += 1
        self._request_timestamps.append(now)
        self.total_admitted += 1
        self.peak_active = max(self.peak_active, self._active_requests)

    def try_acquire(self) -> bool:
        """Admit immediately if possible without queueing.

        Never jumps the queue: returns False while anyone is waiting.
        """
        now = self._clock()
        if self._waiters or not self._has_capacity(now):
            return False
        self._admit(now)
        return True

    async def acquire(self) -> None:
        """Suspend until admitted; the caller must later call ``release()``."""
        if self.try_acquire():
            return

        loop = asyncio.get_running_loop()
        waiter = loop.create_future()
        self._waiters.append(waiter)
        logger.debug(
            f"Request queued for admission (active={self._active_requests}, "
            f"queued={len(self._waiters)})"
        )
        self._wake_waiters()

        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # Admitted in the same tick we were cancelled: hand the slot back
                self.release()
            else:
                try:
                    self._waiters.remove(waiter)
                except ValueError:
                    pass
                self._wake_waiters()
            raise

    def release(self) -> None:
        """Release an admitted slot and wake the next waiter."""
        if self._active_requests <= 0:
            raise RuntimeError("release() called without a matching acquire()")
        self._active_requests -= 1
        self._wake_waiters()

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[None]:
        """Hold one admission for the duration of the block."""
        await self.acquire()
        try:
            yield
        finally:
            self.release()

    def _wake_waiters(self) -> None:
        now = self._clock()
        while self._waiters and self._has_capacity(now):
            waiter = self._waiters.popleft()
            if waiter.done():
                continue
            self._admit(now)
            waiter.set_result(None)

        # Drop cancelled heads so an empty queue cancels the timer below
        while self._waiters and self._waiters[0].done():
            self._waiters.popleft()

        self._schedule_window_wake(now)

    def _schedule_window_wake(self, now: float) -> None:
        """Arm a single timer for when the window frees a slot.

        Only needed when waiters are blocked by the per-window limit; a
        concurrency-blocked waiter is woken by ``release()`` instead.
        """
        if self._wake_handle is not None:
            self._wake_handle.cancel()
            self._wake_handle = None

        if not self._waiters:
            return
        if self._active_requests >= self.concurrency_limit:
            return
        if not self._request_timestamps:
            return

        delay = max(self._request_timestamps[0] + self.window_seconds - now, 0.0)
        loop = asyncio.get_running_loop()
        self._wake_handle = loop.call_later(delay, self._on_window_timer)

    def _on_window_timer(self) -> None:
        self._wake_handle = None
        self._wake_waiters()

    def stats(self) -> Dict[str, Any]:
        """Get a snapshot of limiter counters."""
        now = self._clock()
        self._prune(now)
        return {
            "active_requests": self._active_requests,
            "queued": self.queued,
            "requests_in_window": len(self._request_timestamps),
            "requests_per_minute": self.requests_per_minute,
            "concurrency_limit": self.concurrency_limit,
            "window_seconds": self.window_seconds,
            "total_admitted": self.total_admitted,
            "peak_active": self.peak_active,
        }
