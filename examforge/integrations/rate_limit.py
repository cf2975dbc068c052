"""Sliding-window request throttling."""
import asyncio
import time
from typing import Any, Awaitable, Callable, Dict, List


class RateLimiter:
    """Sliding-window limiter keyed by an arbitrary string."""

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._clock = clock
        self._sleep = sleep
        self._requests: Dict[str, List[float]] = {}

    def _window(self, key: str, window: float, now: float) -> List[float]:
        timestamps = [t for t in self._requests.get(key, []) if t > now - window]
        self._requests[key] = timestamps
        return timestamps

    def check_limit(self, key: str, limit: int, window: float) -> bool:
        """Record a request and return True if fewer than ``limit`` happened in the last ``window`` seconds."""
        if limit < 1:
            raise ValueError(f"Rate limit must be at least 1, got {limit}")
        now = self._clock()
        timestamps = self._window(key, window, now)
        if len(timestamps) >= limit:
            return False
        timestamps.append(now)
        return True

    async def wait_for_slot(self, key: str, limit: int, window: float) -> None:
        """Sleep until a request slot is available, then take it."""
        while not self.check_limit(key, limit, window):
            oldest = self._requests[key][0]
            await self._sleep(max(oldest + window - self._clock(), 0.0))

    def reset(self, key: str) -> None:
        self._requests.pop(key, None)


rate_limiter = RateLimiter()
