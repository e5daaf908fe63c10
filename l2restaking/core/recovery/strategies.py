"""
Recovery Strategies

Retry policy applied to every on-chain read and CCIP explorer call.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Callable, Coroutine, Dict, Optional, Tuple, Type, TypeVar

from .errors import RecoverableError, UnrecoverableError, classify_error

T = TypeVar("T")


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_attempts: int = 3
    initial_delay_seconds: float = 1.0
    max_delay_seconds: float = 30.0
    exponential_base: float = 2.0
    jitter: bool = True
    jitter_factor: float = 0.1

    def get_delay(self, attempt: int) -> float:
        """Calculate delay for a given attempt number."""
        delay = min(
            self.initial_delay_seconds * (self.exponential_base ** attempt),
            self.max_delay_seconds,
        )
        if self.jitter:
            jitter_range = delay * self.jitter_factor
            delay += random.uniform(-jitter_range, jitter_range)
        return max(delay, 0)


class RetryStrategy:
    """
    Retry recoverable errors up to max_attempts times.

    Only errors classified as recoverable are retried. ``retry_on`` narrows
    retries further to specific recoverable types.
    """

    def __init__(
        self,
        config: Optional[RetryConfig] = None,
        logger: Optional[logging.Logger] = None,
        retry_on: Optional[Tuple[Type[Exception], ...]] = None,
        sleep: Callable[[float], Coroutine[Any, Any, None]] = asyncio.sleep,
    ):
        self.config = config or RetryConfig()
        self.logger = logger or logging.getLogger(__name__)
        self.retry_on = retry_on
        self._sleep = sleep

    async def execute(
        self,
        operation: Callable[[], Coroutine[Any, Any, T]],
        context: Optional[Dict[str, Any]] = None,
    ) -> T:
        last_error: Optional[Exception] = None
        label = (context or {}).get("operation", "operation")

        for attempt in range(self.config.max_attempts):
            try:
                return await operation()
            except Exception as e:
                last_error = e

                if not self.should_retry(e, attempt):
                    raise

                delay = self._get_delay(e, attempt)
                self.logger.warning(
                    "%s attempt %d/%d failed: %s. Retrying in %.1fs",
                    label,
                    attempt + 1,
                    self.config.max_attempts,
                    e,
                    delay,
                )
                await self._sleep(delay)

        raise last_error or RuntimeError("All retry attempts exhausted")

    def should_retry(self, error: Exception, attempt: int) -> bool:
        if attempt >= self.config.max_attempts - 1:
            return False

        if isinstance(error, UnrecoverableError):
            return False

        if self.retry_on is not None and not isinstance(error, self.retry_on):
            return False

        if isinstance(error, RecoverableError):
            return True

        return classify_error(error).recoverable

    def _get_delay(self, error: Exception, attempt: int) -> float:
        if isinstance(error, RecoverableError) and error.retry_after:
            return error.retry_after
        return self.config.get_delay(attempt)
