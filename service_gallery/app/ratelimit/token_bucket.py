"""
Token bucket pacing for upstream requests.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Awaitable, Callable, Dict, Optional

from shared.logging import get_logger


class TokenBucket:
    """Async token bucket.

    ``rate`` tokens are added per second up to ``capacity``. ``acquire``
    waits until a token is available; waiters are served in arrival order.
    A ``rate`` of 0 disables pacing entirely.
    """

    def __init__(
        self,
        rate: float,
        capacity: int = 1,
        *,
        name: str = "upstream",
        clock: Callable[[], float] = time.monotonic,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    ):
        self.rate = rate
        self.capacity = max(1, capacity)
        self.name = name
        self.logger = get_logger(f"gallery.rate_limiter.{name}")
        self._clock = clock
        self._sleep = sleep or asyncio.sleep
        self._tokens = float(self.capacity)
        self._updated_at = clock()
        self._lock = asyncio.Lock()
        self._waits = 0

    @classmethod
    def from_interval(cls, interval_seconds: float, capacity: int = 1, **kwargs) -> "TokenBucket":
        """Build a bucket that allows one request every ``interval_seconds``."""
        rate = 1.0 / interval_seconds if interval_seconds > 0 else 0.0
        return cls(rate, capacity, **kwargs)

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._updated_at)
        self._tokens = min(float(self.capacity), self._tokens + elapsed * self.rate)
        self._updated_at = now

    async def acquire(self) -> float:
        """Take one token, sleeping as needed. Returns the time spent waiting."""
        if self.rate <= 0:
            return 0.0

        waited = 0.0
        async with self._lock:
            while True:
                self._refill()
                if self._tokens >= 1.0:
                    self._tokens -= 1.0
                    return waited

                delay = (1.0 - self._tokens) / self.rate
                self._waits += 1
                waited += delay
                self.logger.debug("Pacing upstream request", delay=round(delay, 3))
                await self._sleep(delay)

    def get_state(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "rate": self.rate,
            "capacity": self.capacity,
            "tokens": round(self._tokens, 3),
            "waits": self._waits,
        }
