"""Retry logic and decorators using tenacity.

This module provides retry decorators for provider API interactions, with
exponential backoff, jitter, and specific handling for rate limits.
"""

import asyncio
from collections.abc import Callable
from functools import wraps
from typing import Any, TypeVar

from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)

from appwrite_transfer.client.exceptions import NetworkError, RateLimitError, ServerError
from appwrite_transfer.utils.logging import get_logger

logger = get_logger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

TRANSIENT_ERRORS: tuple[type[Exception], ...] = (NetworkError, ServerError, RateLimitError)


def retry_with_backoff(
    max_attempts: int = 5,
    min_wait: float = 2,
    max_wait: float = 60,
    retry_on_exceptions: tuple[type[Exception], ...] = TRANSIENT_ERRORS,
) -> Callable[[F], F]:
    """General retry decorator with exponential backoff and jitter.

    Only coroutine functions can be decorated. Use it on idempotent reads;
    pushes are never retried blindly because a timed-out create may have
    landed at the destination.

    Args:
        max_attempts: Maximum number of attempts
        min_wait: Minimum wait time in seconds
        max_wait: Maximum wait time in seconds
        retry_on_exceptions: Exception types that trigger a retry

    Returns:
        Decorated function with retry logic
    """

    def decorator(func: F) -> F:
        if not asyncio.iscoroutinefunction(func):
            raise TypeError(f"retry_with_backoff requires a coroutine function: {func.__name__}")

        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(max_attempts),
                wait=wait_random_exponential(multiplier=1, min=min_wait, max=max_wait),
                retry=retry_if_exception_type(retry_on_exceptions),
                reraise=True,
            ):
                with attempt:
                    attempt_number = attempt.retry_state.attempt_number
                    if attempt_number > 1:
                        logger.info(
                            "retry_attempt",
                            function=func.__name__,
                            attempt=attempt_number,
                            max_attempts=max_attempts,
                        )
                    return await func(*args, **kwargs)

        return wrapper  # type: ignore

    return decorator


async def retry_with_rate_limit_handling(
    coro: Callable[..., Any],
    max_attempts: int = 5,
    min_wait: int = 2,
    max_wait: int = 120,
) -> Any:
    """Retry a coroutine factory, honouring Retry-After on 429 responses.

    Args:
        coro: Zero-argument callable returning an awaitable
        max_attempts: Maximum number of attempts
        min_wait: Minimum wait time in seconds
        max_wait: Maximum wait time in seconds

    Returns:
        Result of the coroutine

    Raises:
        RateLimitError: If all attempts are rate limited
    """
    for attempt in range(1, max_attempts + 1):
        try:
            return await coro()
        except RateLimitError as e:
            if attempt >= max_attempts:
                logger.error("rate_limit_retry_exhausted", attempt=attempt)
                raise

            wait_time = e.retry_after if e.retry_after else min(min_wait * (2**attempt), max_wait)
            logger.warning(
                "rate_limit_retrying",
                attempt=attempt,
                max_attempts=max_attempts,
                wait_seconds=wait_time,
            )
            await asyncio.sleep(wait_time)

    raise RateLimitError("Rate limit retry exhausted")


# Pre-configured decorators for common use cases
retry_api_call = retry_with_backoff(max_attempts=5, min_wait=2, max_wait=60)
retry_api_call_short = retry_with_backoff(max_attempts=3, min_wait=1, max_wait=10)
