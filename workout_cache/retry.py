"""Retry and timeout helpers for transient failures.

Embedding and search calls are retried with tenacity using full-jitter
exponential backoff. Only errors flagged ``retryable`` are repeated;
validation errors surface on the first attempt.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_random_exponential,
)

from workout_cache.exceptions import WorkoutCacheError
from workout_cache.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def is_retryable(exc: BaseException) -> bool:
    """Return True for errors that may succeed on a later attempt."""
    return isinstance(exc, WorkoutCacheError) and exc.retryable


def create_retry_policy(
    max_attempts: int,
    max_wait: float,
    multiplier: float = 0.1,
) -> AsyncRetrying:
    """Build a bounded retry policy for pipeline-boundary calls.

    Args:
        max_attempts: Total attempts including the first.
        max_wait: Upper bound in seconds for a single backoff sleep.
        multiplier: Base of the exponential backoff in seconds.

    Returns:
        AsyncRetrying that re-raises the last error once attempts run out.
    """
    return AsyncRetrying(
        retry=retry_if_exception(is_retryable),
        stop=stop_after_attempt(max_attempts),
        wait=wait_random_exponential(multiplier=multiplier, max=max_wait),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )


async def retry_async(
    func: Callable[[], Awaitable[T]],
    max_attempts: int,
    max_wait: float,
) -> T:
    """Await ``func()`` under a retry policy.

    ``func`` is called afresh on every attempt, so it must build a new
    awaitable each time (a lambda or ``functools.partial`` over an async
    method is fine).

    Raises:
        WorkoutCacheError: The last error once attempts run out, or the first
            non-retryable one.
    """
    async for attempt in create_retry_policy(max_attempts, max_wait):
        with attempt:
            return await func()
    raise RuntimeError("retry policy stopped without an outcome")


async def call_with_timeout(
    func: Callable[[], Awaitable[T]],
    seconds: float,
    on_timeout: Callable[[], WorkoutCacheError],
) -> T:
    """Await ``func()`` and convert a timeout into a cache error.

    Cancelling the caller cancels the pending call as well.
    """
    try:
        async with asyncio.timeout(seconds):
            return await func()
    except TimeoutError as e:
        raise on_timeout() from e
