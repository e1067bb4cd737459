"""Time source shared by the throttle, the cooldown tracker and the retry loop.

Injected everywhere time is read or waited on, so tests can substitute a
fake clock and run backoff schedules instantly.
"""

import asyncio
import time


class Clock:
    """Monotonic clock with an asyncio sleep."""

    def now(self) -> float:
        return time.monotonic()

    async def sleep(self, seconds: float) -> None:
        if seconds > 0:
            await asyncio.sleep(seconds)
