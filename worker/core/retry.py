"""
retry.py - Bounded retry with pure exponential backoff.

Every network-bound call in the worker (report fetch/patch, blob transfer,
inference) goes through retry() so transient failures stay invisible to the
layers above.
"""

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def retry(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    base_delay_ms: int = 500,
) -> T:
    """
    Run `operation` until it succeeds or `max_attempts` is used up.

    Waits base_delay_ms * 2**attempt between attempts (no jitter). When the
    last attempt fails its exception is re-raised as-is.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    retrying = AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=base_delay_ms / 1000, exp_base=2),
        sleep=asyncio.sleep,
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async for attempt in retrying:
        with attempt:
            return await operation()

    raise AssertionError("unreachable")
