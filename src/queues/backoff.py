"""
Exponential backoff with jitter for reconnect and poll loops.
"""

import asyncio
import random


class ExponentialBackoff:
    """
    Delay = min(base_delay * multiplier**attempt, max_delay), then jittered
    by up to ±jitter_range of itself.

    Usage:
        backoff = ExponentialBackoff(base_delay=1.0, max_delay=60.0)
        while running:
            try:
                await poll()
                backoff.reset()
            except RedisError:
                await backoff.wait()
    """

    def __init__(
        self,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        multiplier: float = 2.0,
        jitter_range: float = 0.5,
    ):
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.multiplier = multiplier
        self.jitter_range = jitter_range
        self._attempt = 0

    @property
    def attempt(self) -> int:
        """Consecutive failures since the last reset()."""
        return self._attempt

    def next_delay(self) -> float:
        """Return the next delay and advance the attempt counter."""
        delay = min(self.base_delay * (self.multiplier**self._attempt), self.max_delay)
        delay += delay * random.uniform(-self.jitter_range, self.jitter_range)
        self._attempt += 1
        return max(0.0, delay)

    async def wait(self) -> float:
        """Sleep for the next delay and return it."""
        delay = self.next_delay()
        await asyncio.sleep(delay)
        return delay

    def reset(self) -> None:
        self._attempt = 0
