"""Fixed-size admission limiter for concurrent folder operations.

Bulk commands run many independent tasks at once; the limiter bounds how
many of them are in flight against the API at any moment.
"""

import asyncio
import logging
import threading
from dataclasses import dataclass
from typing import Any, Awaitable, Iterable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_CONCURRENT = 5


@dataclass
class AdmissionStats:
    """Counters for admitted tasks."""

    admitted: int = 0
    completed: int = 0
    failed: int = 0
    in_flight: int = 0
    peak_in_flight: int = 0


class AdmissionLimiter:
    """Semaphore-based concurrency limit with usage statistics."""

    def __init__(self, max_concurrent: int = DEFAULT_MAX_CONCURRENT):
        """Initialize the limiter.

        Args:
            max_concurrent: Maximum number of tasks admitted at once.
        """
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self._max_concurrent = max_concurrent
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._stats = AdmissionStats()
        self._lock = threading.Lock()

    @property
    def max_concurrent(self) -> int:
        return self._max_concurrent

    @property
    def stats(self) -> AdmissionStats:
        return self._stats

    async def acquire(self) -> None:
        """Wait for a free slot."""
        await self._semaphore.acquire()
        with self._lock:
            self._stats.admitted += 1
            self._stats.in_flight += 1
            self._stats.peak_in_flight = max(self._stats.peak_in_flight, self._stats.in_flight)

    def release(self, success: bool) -> None:
        """Free a slot and record the outcome."""
        with self._lock:
            self._stats.in_flight -= 1
            if success:
                self._stats.completed += 1
            else:
                self._stats.failed += 1
        self._semaphore.release()

    def slot(self) -> "AdmissionContext":
        """Async context manager holding one slot."""
        return AdmissionContext(self)

    async def run(self, awaitable: Awaitable[T]) -> T:
        """Await a single awaitable inside a slot."""
        async with self.slot():
            return await awaitable

    async def gather(self, awaitables: Iterable[Awaitable[T]]) -> list[T]:
        """Run awaitables concurrently under the limit, preserving order.

        The first exception propagates once it is raised; results of the
        remaining tasks are discarded.
        """
        tasks = [asyncio.ensure_future(self.run(a)) for a in awaitables]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise


class AdmissionContext:
    """Async context manager for one admission slot."""

    def __init__(self, limiter: AdmissionLimiter):
        self._limiter = limiter

    async def __aenter__(self) -> "AdmissionContext":
        await self._limiter.acquire()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self._limiter.release(exc_type is None)
