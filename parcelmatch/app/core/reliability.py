"""
Reliability utilities.

Bounded retries for short store reads. Matching cannot proceed without its
inputs, so once the attempts are exhausted the last error is re-raised to
the caller.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Tuple, Type, TypeVar

from sqlalchemy.exc import InterfaceError, OperationalError

logger = logging.getLogger("parcelmatch.reliability")

T = TypeVar("T")

# Errors worth retrying: connection drops, timeouts, pool exhaustion
TRANSIENT_ERRORS: Tuple[Type[BaseException], ...] = (OperationalError, InterfaceError, ConnectionError, asyncio.TimeoutError)


async def with_bounded_retry(
    operation: Callable[[], Awaitable[T]],
    attempts: int = 3,
    delay_seconds: float = 0.2,
    retry_on: Tuple[Type[BaseException], ...] = TRANSIENT_ERRORS,
    description: str = "store read",
) -> T:
    """
    Run an async operation, retrying transient failures a fixed number of times.

    Delay doubles after each failed attempt.

    Raises:
        The last transient error once all attempts have failed.
    """
    if attempts < 1:
        raise ValueError("attempts must be at least 1")

    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except retry_on as exc:
            if attempt == attempts:
                logger.error(
                    "%s failed after %d attempts: %s", description, attempts, exc
                )
                raise
            wait = delay_seconds * (2 ** (attempt - 1))
            logger.warning(
                "%s failed (attempt %d/%d), retrying in %.2fs: %s",
                description, attempt, attempts, wait, exc
            )
            await asyncio.sleep(wait)
