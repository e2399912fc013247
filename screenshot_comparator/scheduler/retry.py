"""Retry policy with exponential backoff for transient, timeout-class failures."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, TypeVar

from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from screenshot_comparator.models.config import RetryConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")

TIMEOUT_ERRORS: tuple[type[BaseException], ...] = (PlaywrightTimeoutError, asyncio.TimeoutError)


@dataclass
class RetryPolicy:
    """Retries an async action on retryable errors, doubling the delay each time.

    Args:
        max_attempts: Total attempts including the first one.
        base_delay: Seconds to wait before the first retry.
        multiplier: Factor applied to the delay after each retry.
        attempt_timeout: Optional hard timeout in seconds for each attempt.
        retry_on: Exception types considered transient. Anything else
            propagates immediately.
    """
    max_attempts: int = 3
    base_delay: float = 1.0
    multiplier: float = 2.0
    attempt_timeout: float | None = None
    retry_on: tuple[type[BaseException], ...] = field(default=TIMEOUT_ERRORS)

    @classmethod
    def from_config(cls, config: RetryConfig, attempt_timeout: float | None = None) -> "RetryPolicy":
        return cls(
            max_attempts=config.max_attempts,
            base_delay=config.base_delay_seconds,
            multiplier=config.multiplier,
            attempt_timeout=attempt_timeout,
        )

    def delay_for(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (0-based)."""
        return self.base_delay * (self.multiplier ** attempt)

    def is_retryable(self, error: BaseException) -> bool:
        return isinstance(error, self.retry_on)

    async def call(self, action: Callable[[], Awaitable[T]], description: str = "action") -> T:
        start = time.monotonic()
        for attempt in range(self.max_attempts):
            try:
                if self.attempt_timeout is not None:
                    result = await asyncio.wait_for(action(), self.attempt_timeout)
                else:
                    result = await action()
            except Exception as e:
                if not self.is_retryable(e):
                    raise
                if attempt + 1 >= self.max_attempts:
                    logger.error("%s failed after %d attempts (%.1fs): %s",
                                 description, attempt + 1, time.monotonic() - start, e)
                    raise
                delay = self.delay_for(attempt)
                logger.warning("%s timed out (attempt %d/%d), retrying in %.1fs",
                               description, attempt + 1, self.max_attempts, delay)
                await asyncio.sleep(delay)
                continue

            if attempt > 0:
                logger.info("%s succeeded on attempt %d/%d", description, attempt + 1, self.max_attempts)
            return result

        raise RuntimeError("unreachable")  # max_attempts >= 1
