"""
Resilience — retry with exponential backoff for alert delivery.

An alert is persisted before it is delivered, so a channel that keeps
failing only delays the notification. Each channel gets
`ALERT_DELIVERY_RETRIES` extra attempts, spaced

    min(base_delay × 2^n, max_delay) + uniform(0, jitter)
"""

import asyncio
import random
from collections.abc import Awaitable, Callable, Iterator
from typing import Optional, TypeVar

import structlog

from riskquote.config import settings

logger = structlog.get_logger(__name__)

T = TypeVar("T")


def backoff_delays(
    retries: int,
    base_delay: float = 1.0,
    max_delay: float = 16.0,
    jitter: float = 0.5,
) -> Iterator[float]:
    """Sleep before each retry; yields `retries` values."""
    for n in range(retries):
        yield min(base_delay * (2 ** n), max_delay) + random.uniform(0, jitter)


async def retry_with_backoff(
    fn: Callable[[], Awaitable[T]],
    max_retries: Optional[int] = None,
    base_delay: float = 1.0,
    max_delay: float = 16.0,
    jitter: float = 0.5,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    operation_name: str = "operation",
) -> T:
    """
    Await `fn()` once, then once more after each backoff delay while it
    raises one of `retry_on`. The last error propagates.
    """
    retries = settings.alert_delivery_retries if max_retries is None else max_retries
    delays = backoff_delays(retries, base_delay, max_delay, jitter)
    attempt = 1
    while True:
        try:
            return await fn()
        except retry_on as exc:
            delay = next(delays, None)
            if delay is None:
                logger.error("retry_exhausted", operation=operation_name, attempts=attempt, error=str(exc))
                raise
            logger.warning(
                "retry_scheduled",
                operation=operation_name,
                failed_attempt=attempt,
                retries=retries,
                delay=round(delay, 2),
                error=str(exc),
            )
            attempt += 1
            await asyncio.sleep(delay)
