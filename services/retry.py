"""
Bounded retry and polling helpers for calls to external providers.
`sleep` is injectable so callers and tests control the clock.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from services.errors import ExternalServiceError

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


def is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, ExternalServiceError):
        return exc.retryable
    return isinstance(exc, asyncio.TimeoutError)


async def retry_async(
    fn: Callable[[], Awaitable[T]],
    attempts: int = 3,
    base_delay: float = 1.0,
    sleep: Optional[Sleep] = None,
    label: str = "external call",
) -> T:
    """
    Await fn() up to `attempts` times. Retryable failures back off base_delay * 2**n;
    anything else propagates on the first occurrence. The last error is re-raised
    once attempts are exhausted.
    """
    if attempts < 1:
        raise ValueError("attempts must be >= 1")
    sleep = sleep or asyncio.sleep
    for attempt in range(attempts):
        try:
            return await fn()
        except Exception as exc:
            if not is_retryable(exc) or attempt == attempts - 1:
                raise
            delay = base_delay * (2 ** attempt)
            logger.warning("%s failed (attempt %d/%d): %s; retrying in %.1fs", label, attempt + 1, attempts, exc, delay)
            await sleep(delay)
    raise AssertionError("unreachable")


async def poll_until(
    fetch: Callable[[], Awaitable[T]],
    done: Callable[[T], bool],
    attempts: int = 10,
    initial_delay: float = 1.0,
    max_delay: float = 30.0,
    sleep: Optional[Sleep] = None,
) -> T:
    """
    Call fetch() until done(result) holds, doubling the wait between calls up to
    max_delay. Raises a retryable ExternalServiceError when attempts run out.
    """
    sleep = sleep or asyncio.sleep
    delay = initial_delay
    result = None
    for attempt in range(attempts):
        result = await fetch()
        if done(result):
            return result
        if attempt < attempts - 1:
            await sleep(delay)
            delay = min(delay * 2, max_delay)
    raise ExternalServiceError("poll", f"condition not met after {attempts} attempts", retryable=True)
