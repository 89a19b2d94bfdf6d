"""Bounded retry loop for lock and semaphore acquisition. Cooperative wait, never a thread sleep."""

import asyncio
from typing import Awaitable, Callable, TypeVar

G = TypeVar("G")


async def retry_acquire(
    attempt: Callable[[], Awaitable[G | None]],
    *,
    max_retries: int,
    retry_delay: float,
) -> tuple[G | None, int]:
    """
    Call attempt() once, then up to max_retries more times, sleeping retry_delay
    seconds between calls. Returns (result, attempts_made); result is None when
    every attempt came back empty. Exceptions from attempt() propagate at once.
    """
    if max_retries < 0:
        raise ValueError(f"max_retries must be >= 0, got {max_retries}")
    if retry_delay < 0:
        raise ValueError(f"retry_delay must be >= 0, got {retry_delay}")
    attempts = 0
    for n in range(max_retries + 1):
        attempts += 1
        result = await attempt()
        if result is not None:
            return result, attempts
        if n < max_retries:
            await asyncio.sleep(retry_delay)
    return None, attempts
