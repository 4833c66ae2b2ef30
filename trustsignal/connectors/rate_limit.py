"""
TrustSignal — Connector Rate Limiter

Fixed-window request budget, one instance per connector.

    CFPB           30 / minute
    NHTSA          60 / minute
    GDELT          30 / minute
    CourtListener  5000 / hour (token required)
    OpenFDA        240 / minute
    Data.gov       1000 / hour with key, 30 / hour on DEMO_KEY

When the budget is spent the caller suspends on the injected clock until the
window resets. The wait is capped at `max_wait_seconds`; after a capped wait
the window is reset anyway so a misconfigured budget cannot stall a batch.
"""
import asyncio
from typing import Optional

import structlog

from trustsignal.clock import Clock

logger = structlog.get_logger()

MINUTE = 60.0
HOUR = 3600.0


class WindowRateLimiter:

    def __init__(
        self,
        budget: int,
        window_seconds: float,
        clock: Optional[Clock] = None,
        max_wait_seconds: float = 60.0,
        name: str = "",
    ):
        if budget < 1:
            raise ValueError("rate limit budget must be at least 1")
        self.name = name
        self._budget = budget
        self._window = window_seconds
        self._max_wait = max_wait_seconds
        self._clock = clock or Clock()
        self._requests_in_window = 0
        self._window_start: Optional[float] = None
        self._lock = asyncio.Lock()

    @property
    def budget(self) -> int:
        return self._budget

    @property
    def requests_in_window(self) -> int:
        return self._requests_in_window

    @property
    def remaining(self) -> int:
        return max(0, self._budget - self._requests_in_window)

    async def acquire(self) -> float:
        """Take one request from the budget. Returns the seconds spent waiting."""
        async with self._lock:
            now = self._clock.monotonic()
            if self._window_start is None or now - self._window_start >= self._window:
                self._window_start = now
                self._requests_in_window = 0

            waited = 0.0
            if self._requests_in_window >= self._budget:
                wait = min(self._window - (now - self._window_start), self._max_wait)
                logger.info("rate_limit_wait",
                            limiter=self.name,
                            wait_seconds=round(wait, 2),
                            budget=self._budget)
                await self._clock.sleep(wait)
                waited = wait
                self._window_start = self._clock.monotonic()
                self._requests_in_window = 0

            self._requests_in_window += 1
            return waited
