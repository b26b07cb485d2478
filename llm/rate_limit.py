"""
Rate limiting for the AI enrichment provider.

Sliding-window request counter plus a concurrency cap, shared by every
worker that calls the provider.
"""

import asyncio
import logging
import time
from typing import List

logger = logging.getLogger(__name__)


class ProviderRateLimiter:
    """
    Async context manager guarding provider calls.

    At most ``max_concurrency`` calls run at once and at most
    ``requests_per_window`` calls start within any ``window_seconds``.
    """

    def __init__(
        self,
        requests_per_window: int = 60,
        max_concurrency: int = 4,
        window_seconds: float = 60.0,
    ):
        if requests_per_window < 1 or max_concurrency < 1:
            raise ValueError("Rate limits must be at least 1")
        self.requests_per_window = requests_per_window
        self.max_concurrency = max_concurrency
        self.window_seconds = window_seconds
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._lock = asyncio.Lock()
        self._requests: List[float] = []

    async def __aenter__(self):
        await self._semaphore.acquire()
        try:
            await self._wait_for_slot()
        except BaseException:
            self._semaphore.release()
            raise
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self._semaphore.release()
        return False

    async def _wait_for_slot(self):
        while True:
            async with self._lock:
                now = time.monotonic()

                # Clean old entries
                window_start = now - self.window_seconds
                self._requests = [t for t in self._requests if t > window_start]

                if len(self._requests) < self.requests_per_window:
                    self._requests.append(now)
                    return

                wait = self._requests[0] + self.window_seconds - now

            logger.debug(f"AI provider rate limit reached, waiting {wait:.2f}s")
            await asyncio.sleep(max(wait, 0.001))

    @property
    def in_window(self) -> int:
        """Number of calls started in the current window."""
        window_start = time.monotonic() - self.window_seconds
        return sum(1 for t in self._requests if t > window_start)
