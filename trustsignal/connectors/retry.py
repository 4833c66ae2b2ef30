"""
TrustSignal — Connector Retry Policy

tenacity-driven exponential backoff with jitter, for TransientProviderError only:

    delay(attempt n) = base_delay * 2 ** (n - 1) + uniform(0, max_jitter)

Attempts are strictly sequential and every backoff sleeps on the injected
Clock. When the ceiling is reached the last TransientProviderError propagates
to the caller.
"""
import random
from typing import Awaitable, Callable, Optional, TypeVar

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from trustsignal.clock import Clock
from trustsignal.errors import TransientProviderError

logger = structlog.get_logger()

T = TypeVar("T")


class RetryPolicy:

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_jitter: float = 1.0,
        max_delay: float = 60.0,
        clock: Optional[Clock] = None,
        rng: Optional[random.Random] = None,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_jitter = max_jitter
        self.max_delay = max_delay
        self.clock = clock or Clock()
        self._rng = rng or random.Random()

    def _jitter(self, retry_state: RetryCallState) -> float:
        # Seedable, unlike tenacity.wait_random
        if self.max_jitter <= 0:
            return 0.0
        return self._rng.uniform(0, self.max_jitter)

    def _retrying(self, provider: str) -> AsyncRetrying:
        def log_retry(retry_state: RetryCallState) -> None:
            error = retry_state.outcome.exception()
            logger.warning("provider_retry",
                           provider=provider,
                           attempt=retry_state.attempt_number,
                           delay_seconds=round(retry_state.next_action.sleep, 3),
                           status=getattr(error, "status_code", None))

        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.base_delay, max=self.max_delay) + self._jitter,
            retry=retry_if_exception_type(TransientProviderError),
            sleep=self.clock.sleep,
            before_sleep=log_retry,
            reraise=True,
        )

    async def run(self, fn: Callable[[], Awaitable[T]], provider: str = "") -> T:
        retrying = self._retrying(provider)
        try:
            return await retrying(fn)
        except TransientProviderError as e:
            logger.error("provider_retries_exhausted",
                         provider=provider,
                         attempts=retrying.statistics.get("attempt_number", self.max_attempts),
                         status=e.status_code,
                         error=str(e))
            raise
