"""Async token-bucket rate limiter for the source-control API."""

from __future__ import annotations

import asyncio
import time


class RateLimiter:
    """Allow at most ``rate`` acquisitions per ``per_seconds`` on average."""

    def __init__(self, rate: float, per_seconds: float = 1.0):
        if rate <= 0 or per_seconds <= 0:
            raise ValueError("rate and per_seconds must be greater than zero")
        self.capacity = float(rate)
        self.tokens = float(rate)
        self.fill_rate = float(rate) / float(per_seconds)
        self.updated_at = time.monotonic()
        self._lock = asyncio.Lock()

    def _refill(self) -> None:
        now = time.monotonic()
        elapsed = now - self.updated_at
        self.updated_at = now
        self.tokens = min(self.capacity, self.tokens + elapsed * self.fill_rate)

    async def acquire(self) -> None:
        while True:
            async with self._lock:
                self._refill()
                if self.tokens >= 1:
                    self.tokens -= 1
                    return
                wait_time = (1 - self.tokens) / self.fill_rate

            await asyncio.sleep(wait_time)

    def pause(self, seconds: float) -> None:
        """Drain the bucket so the next acquisitions wait roughly ``seconds``."""
        self._refill()
        self.tokens = min(self.tokens, 1 - seconds * self.fill_rate)
