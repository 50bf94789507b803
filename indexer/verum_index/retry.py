"""
Retry policy shared by ledger fetches and segment submission.

The policy is a value: attempts, base delay, multiplier and cap. ``run``
executes an async operation under it, sleeping between attempts.

Invariants:
    - ``delay_for(n)`` is the wait before attempt n + 1 and never exceeds
      ``max_delay``
    - Exceptions outside ``retry_on`` propagate immediately
    - After the last attempt the last exception is re-raised unchanged
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]
OnRetry = Callable[[int, BaseException, float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff settings.

    Attributes:
        max_attempts: Attempts including the first one
        base_delay: Delay before the first retry (seconds)
        multiplier: Growth factor between consecutive delays
        max_delay: Cap on any single delay (seconds)
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 30.0

    def delay_for(self, attempt: int) -> float:
        """Delay after failed attempt number ``attempt`` (1-based)."""
        return min(self.base_delay * (self.multiplier ** (attempt - 1)), self.max_delay)

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        retry_on: Tuple[Type[BaseException], ...] = (Exception,),
        sleep: Sleep = asyncio.sleep,
        on_retry: Optional[OnRetry] = None,
    ) -> T:
        """Run an operation, retrying on the given exception types.

        Args:
            operation: Zero-argument coroutine factory, called once per attempt
            retry_on: Exception types that trigger another attempt
            sleep: Async sleep used between attempts
            on_retry: Awaited before each retry with (attempt, error, delay)

        Returns:
            The operation's result

        Raises:
            Exception: The last error once attempts are exhausted, or any
                error not listed in ``retry_on``
        """
        attempt = 1
        while True:
            try:
                return await operation()
            except retry_on as e:
                if attempt >= self.max_attempts:
                    logger.warning(
                        f"Giving up after {attempt} attempts: {e}",
                        extra={"attempts": attempt},
                    )
                    raise
                delay = self.delay_for(attempt)
                logger.debug(
                    f"Attempt {attempt} failed, retrying in {delay:.2f}s: {e}",
                    extra={"attempt": attempt, "delay": delay},
                )
                if on_retry is not None:
                    await on_retry(attempt, e, delay)
                await sleep(delay)
                attempt += 1
