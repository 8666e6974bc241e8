# authcore/shared/utils/retry.py

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Tuple, Type, TypeVar

from authcore.domain.exceptions import StoreUnavailableError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """
    Exponential backoff: ``retries`` extra attempts after the first one,
    waiting ``base_delay``, then twice that, and so on.
    """
    retries: int = 3
    base_delay: float = 1.0
    retry_on: Tuple[Type[BaseException], ...] = (StoreUnavailableError,)

    @classmethod
    def from_settings(cls, settings) -> "RetryPolicy":
        return cls(
            retries=settings.DB_RETRY_ATTEMPTS,
            base_delay=settings.DB_RETRY_BASE_DELAY_SECONDS,
        )


async def with_retry(
        operation: Callable[[], Awaitable[T]],
        policy: RetryPolicy,
        description: str = "operation",
) -> T:
    """
    Run ``operation`` and retry it on transient errors.

    Args:
        operation: Zero-argument coroutine factory
        policy: Retry count, base delay and retryable exception types
        description: Used in log lines

    Returns:
        Whatever ``operation`` returns

    Raises:
        The last transient error once retries are exhausted, or any
        non-transient error immediately.
    """
    retries_left = policy.retries
    delay = policy.base_delay
    while True:
        try:
            return await operation()
        except policy.retry_on as e:
            if retries_left <= 0:
                logger.error(f"{description} failed after {policy.retries} retries: {e}")
                raise
            logger.warning(
                f"{description} failed, retrying in {delay:.2f}s "
                f"({retries_left} attempts left)"
            )
            await asyncio.sleep(delay)
            retries_left -= 1
            delay *= 2
