"""
Bounded concurrency for calls to external ports

``AsyncSemaphore`` wraps ``asyncio.Semaphore`` with an acquisition timeout
and usage counters that ingestion reports in its logs.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass
class SemaphoreStats:
    """Point-in-time usage of one semaphore"""

    name: str
    capacity: int
    in_use: int
    total_acquisitions: int
    total_timeouts: int
    max_hold_time: float


class AsyncSemaphore:
    """
    Named semaphore with timeout support and statistics

    Args:
        value: Number of permits
        name: Name used in logs and stats
    """

    def __init__(self, value: int, name: str = "unnamed"):
        if value < 1:
            raise ValueError("Semaphore value must be at least 1")

        self.name = name
        self.capacity = value
        self._semaphore = asyncio.Semaphore(value)
        self._in_use = 0
        self._total_acquisitions = 0
        self._total_timeouts = 0
        self._max_hold_time = 0.0

    @asynccontextmanager
    async def acquire(self, timeout: Optional[float] = None):
        """
        Hold one permit for the duration of the ``async with`` block

        Raises:
            asyncio.TimeoutError: If no permit became free within ``timeout``
        """
        try:
            await asyncio.wait_for(self._semaphore.acquire(), timeout=timeout)
        except asyncio.TimeoutError:
            self._total_timeouts += 1
            logger.warning(f"Semaphore '{self.name}' acquisition timeout after {timeout}s")
            raise

        self._in_use += 1
        self._total_acquisitions += 1
        acquired_at = time.monotonic()
        try:
            yield
        finally:
            self._max_hold_time = max(self._max_hold_time, time.monotonic() - acquired_at)
            self._in_use -= 1
            self._semaphore.release()

    def get_stats(self) -> SemaphoreStats:
        return SemaphoreStats(
            name=self.name,
            capacity=self.capacity,
            in_use=self._in_use,
            total_acquisitions=self._total_acquisitions,
            total_timeouts=self._total_timeouts,
            max_hold_time=self._max_hold_time,
        )
