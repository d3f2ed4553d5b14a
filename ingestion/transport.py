"""
Rate-limited, strictly serial execution of outbound requests.

Every call to the Jira API goes through one RateLimitedTransport so that the
process as a whole never starts more than ``max_requests`` requests within any
rolling ``window_seconds`` window, and never has more than one request in
flight.
"""

import asyncio
import time
from collections import deque
from typing import Awaitable, Callable, Deque, TypeVar
import logging

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RateLimitedTransport:
    """
    FIFO queue with concurrency 1 and a rolling-window start budget.

    Ordering comes from asyncio.Lock, which wakes waiters in the order they
    started waiting. The clock and sleep functions are injectable so the
    window arithmetic can be driven deterministically in tests.
    """

    def __init__(
        self,
        max_requests: int = 10,
        window_seconds: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")

        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._sleep = sleep

        self._lock = asyncio.Lock()
        self._starts: Deque[float] = deque()
        self._waiting = 0
        self._in_flight = 0

    @property
    def queue_size(self) -> int:
        """Submissions waiting for their turn"""
        return self._waiting

    @property
    def in_flight(self) -> int:
        return self._in_flight

    async def submit(self, task: Callable[[], Awaitable[T]]) -> T:
        """
        Run ``task`` once it is at the head of the queue and the window has room.

        The task's own exception propagates unchanged to the caller.
        """
        self._waiting += 1
        try:
            await self._lock.acquire()
        finally:
            self._waiting -= 1

        try:
            await self._wait_for_slot()
            self._in_flight += 1
            try:
                return await task()
            finally:
                self._in_flight -= 1
        finally:
            self._lock.release()

    async def _wait_for_slot(self):
        """Block until a start fits in the rolling window, then record it."""
        while True:
            now = self._clock()
            self._evict_expired(now)

            if len(self._starts) < self.max_requests:
                self._starts.append(now)
                return

            wait = self.window_seconds - (now - self._starts[0])
            logger.debug(
                f"Rate limit window full ({self.max_requests}/{self.window_seconds}s). "
                f"Waiting {wait:.3f}s"
            )
            await self._sleep(max(wait, 0.0))

    def _evict_expired(self, now: float):
        while self._starts and now - self._starts[0] >= self.window_seconds:
            self._starts.popleft()
