"""Retry logic with exponential backoff.

This module provides:
- retry_with_backoff: retry an awaitable operation with exponential delay
- is_network_error / is_rate_limit_error: message-based classifiers
- is_retryable_error: default classifier used by the sync pipeline
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Default retry configuration
DEFAULT_MAX_RETRIES = 3
DEFAULT_BASE_DELAY = 1.0  # seconds
DEFAULT_MAX_DELAY = 30.0  # seconds

NETWORK_EXCEPTIONS: tuple[type[Exception], ...] = (
    ConnectionError,
    TimeoutError,
)

NETWORK_ERROR_MARKERS = (
    "network",
    "timeout",
    "timed out",
    "econnrefused",
    "connection refused",
    "enotfound",
    "name or service not known",
    "fetch failed",
)

RATE_LIMIT_MARKERS = (
    "rate limit",
    "ratelimit",
    "too many requests",
    "quota exceeded",
)


def is_network_error(error: BaseException) -> bool:
    """Check whether an error looks like a connectivity problem."""
    if isinstance(error, NETWORK_EXCEPTIONS):
        return True
    message = str(error).lower()
    return any(marker in message for marker in NETWORK_ERROR_MARKERS)


def is_rate_limit_error(error: BaseException) -> bool:
    """Check whether an error looks like throttling by a remote service."""
    message = str(error).lower()
    return any(marker in message for marker in RATE_LIMIT_MARKERS)


def is_retryable_error(error: BaseException) -> bool:
    """Default retry classifier.

    Typed errors decide for themselves through their ``retryable``
    attribute. Anything else falls back to message heuristics.
    """
    retryable = getattr(error, "retryable", None)
    if retryable is not None:
        return bool(retryable)
    return is_network_error(error) or is_rate_limit_error(error)


def backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    """Delay before retry number ``attempt`` (0-based)."""
    return min(base_delay * (2**attempt), max_delay)


async def retry_with_backoff(
    func: Callable[[], Awaitable[T]],
    max_retries: int = DEFAULT_MAX_RETRIES,
    base_delay: float = DEFAULT_BASE_DELAY,
    max_delay: float = DEFAULT_MAX_DELAY,
    is_retryable: Callable[[BaseException], bool] = is_retryable_error,
    operation_name: str = "operation",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Execute an async operation with exponential backoff retry.

    Args:
        func: Zero-argument callable returning an awaitable.
        max_retries: Maximum number of retries after the first attempt.
        base_delay: Delay before the first retry, in seconds.
        max_delay: Upper bound for any single delay, in seconds.
        is_retryable: Classifier deciding whether an error is worth retrying.
        operation_name: Label used in log messages.
        sleep: Awaitable sleep function, injectable for tests.

    Returns:
        Result of the operation.

    Raises:
        The last error if it is not retryable or all retries fail.
    """
    attempt = 0
    while True:
        try:
            return await func()
        except Exception as e:
            if not is_retryable(e):
                logger.warning("%s failed with non-retryable error: %s", operation_name, e)
                raise
            if attempt >= max_retries:
                logger.error("%s failed after %d retries: %s", operation_name, max_retries, e)
                raise

            delay = backoff_delay(attempt, base_delay, max_delay)
            logger.warning(
                "%s attempt %d/%d failed: %s. Retrying in %.1fs...",
                operation_name,
                attempt + 1,
                max_retries + 1,
                e,
                delay,
            )
            await sleep(delay)
            attempt += 1
