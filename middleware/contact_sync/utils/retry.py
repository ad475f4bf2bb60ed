"""
Retry Utilities

Exponential backoff retry for the few outbound calls that are allowed to be
repeated within a single webhook delivery.
"""

import asyncio
from functools import wraps
from typing import Any, Callable, Optional, Tuple, Type

from contact_sync.config import settings
from contact_sync.utils.logging_config import get_logger

logger = get_logger(__name__)


def calculate_backoff(
    attempt: int,
    base: float = 2,
    max_backoff: float = 32,
) -> float:
    """
    Calculate exponential backoff delay.

    Args:
        attempt: Current retry attempt (0-indexed)
        base: Base for exponential calculation
        max_backoff: Maximum backoff time in seconds

    Returns:
        Backoff delay in seconds
    """
    return float(min(base**attempt, max_backoff))


def retry_async(
    max_attempts: Optional[int] = None,
    backoff_base: Optional[float] = None,
    backoff_max: Optional[float] = None,
    retryable_exceptions: Tuple[Type[Exception], ...] = (Exception,),
    on_retry: Optional[Callable[[Exception, int], None]] = None,
) -> Callable:
    """
    Decorator for async functions with exponential backoff retry logic.

    ``max_attempts`` counts the first call, so ``max_attempts=2`` means
    "retry at most once". Exceptions outside ``retryable_exceptions``
    propagate immediately.

    Example:
        @retry_async(max_attempts=2, retryable_exceptions=(httpx.TransportError,))
        async def fetch_data():
            ...
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            attempts = max_attempts if max_attempts is not None else settings.max_retry_attempts
            base = backoff_base if backoff_base is not None else settings.retry_backoff_base
            ceiling = backoff_max if backoff_max is not None else settings.retry_backoff_max

            for attempt in range(attempts):
                try:
                    result = await func(*args, **kwargs)
                    if attempt > 0:
                        logger.info(
                            f"Function {func.__name__} succeeded after {attempt} retries"
                        )
                    return result

                except retryable_exceptions as e:
                    if attempt >= attempts - 1:
                        logger.error(
                            f"All {attempts} attempts failed for {func.__name__}",
                            extra={
                                "function": func.__name__,
                                "max_attempts": attempts,
                                "error": str(e),
                            },
                        )
                        raise

                    backoff_time = calculate_backoff(attempt, base, ceiling)
                    logger.warning(
                        f"Attempt {attempt + 1}/{attempts} failed for {func.__name__}: {e}. "
                        f"Retrying in {backoff_time}s...",
                        extra={
                            "function": func.__name__,
                            "attempt": attempt + 1,
                            "max_attempts": attempts,
                            "backoff_time": backoff_time,
                            "error": str(e),
                        },
                    )

                    if on_retry:
                        on_retry(e, attempt)

                    await asyncio.sleep(backoff_time)

            raise RuntimeError(f"Retry loop for {func.__name__} ran with no attempts")

        return wrapper

    return decorator
