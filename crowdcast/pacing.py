"""Human-like pacing between calls, with injectable sleep and randomness."""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[None]]


class Pacer:
    """Owns every timed wait the orchestrator makes.

    Tests pass a recording ``sleep`` and a seeded ``rng`` so cycles run
    instantly and deterministically.
    """

    def __init__(
        self,
        sleep: SleepFn | None = None,
        rng: random.Random | None = None,
    ):
        self._sleep = sleep or asyncio.sleep
        self._rng = rng or random.Random()

    async def fixed(self, seconds: float) -> None:
        if seconds > 0:
            await self._sleep(seconds)

    async def jitter(self, low: float, high: float) -> float:
        """Sleep a uniformly random duration in [low, high]; return it."""
        seconds = self._rng.uniform(low, high)
        await self.fixed(seconds)
        return seconds
