"""
TrustSignal — Clock

Every wait in the package (rate-limit budget, retry backoff, scheduler pacing)
goes through a Clock so tests can drive time without wall-clock sleeps.
"""
import asyncio
import time
from datetime import datetime, timedelta, timezone
from typing import List, Optional


class Clock:
    """Real time. `sleep` is an ordinary cancellable asyncio sleep."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def monotonic(self) -> float:
        return time.monotonic()

    async def sleep(self, seconds: float) -> None:
        # sleep(0) still yields to the event loop
        await asyncio.sleep(max(0.0, seconds))


SystemClock = Clock


class VirtualClock(Clock):
    """
    Manually driven clock for tests.

    `sleep` advances virtual time immediately and yields once to the event
    loop, so concurrent tasks still interleave at every wait point.
    """

    def __init__(self, start: Optional[datetime] = None):
        self._now = start or datetime(2025, 1, 1, tzinfo=timezone.utc)
        self._mono = 0.0
        self.sleeps: List[float] = []

    def now(self) -> datetime:
        return self._now

    def monotonic(self) -> float:
        return self._mono

    def advance(self, seconds: float) -> None:
        self._mono += seconds
        self._now = self._now + timedelta(seconds=seconds)

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        if seconds > 0:
            self.advance(seconds)
        await asyncio.sleep(0)

    @property
    def total_slept(self) -> float:
        return sum(self.sleeps)
