"""
Bounded retry with backoff.

Used by both the listing-page and detail-page extractors so the retry
behaviour is defined in one place.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry an async operation a bounded number of times.

    The delay after failed attempt N (1-based) is ``base_delay * N``, capped
    at ``max_delay``.
    """
    max_attempts: int = 3
    base_delay: float = 2.0
    max_delay: float = 30.0
    retry_on: Tuple[Type[BaseException], ...] = (Exception,)

    def delay_for(self, attempt: int) -> float:
        """Backoff before the attempt that follows failed attempt `attempt`."""
        return min(self.base_delay * attempt, self.max_delay)

    async def run(
        self,
        operation: Callable[[int], Awaitable[T]],
        description: str = 'operation',
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        on_retry: Optional[Callable[[int, BaseException], None]] = None,
    ) -> T:
        """
        Run `operation(attempt)` until it succeeds or attempts run out.

        Args:
            operation: Coroutine factory, called with the 1-based attempt number
            description: Used in log messages
            sleep: Awaitable sleep (injectable for tests)
            on_retry: Called with (attempt, error) after each failed attempt

        Returns:
            Result of the first successful attempt

        Raises:
            The last error once every attempt has failed
        """
        attempts = max(1, self.max_attempts)
        last_error: Optional[BaseException] = None

        for attempt in range(1, attempts + 1):
            try:
                return await operation(attempt)
            except self.retry_on as e:
                last_error = e
                logger.warning(f"Attempt {attempt}/{attempts} failed for {description}: {e}")
                if on_retry:
                    on_retry(attempt, e)
                if attempt < attempts:
                    await sleep(self.delay_for(attempt))

        raise last_error
