"""Utility functions and helpers for kubecheck."""
import functools
import logging
import time
from typing import Callable, Optional, Tuple, Type, TypeVar

T = TypeVar('T')

logger = logging.getLogger("kubecheck.utils")


class RetryError(Exception):
    """Custom exception for retry-related errors."""
    pass


def retry(
    max_retries: int = 3,
    delay: float = 1.0,
    backoff: float = 2.0,
    exceptions: Tuple[Type[Exception], ...] = (Exception,)
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Decorator for retrying functions with exponential backoff.

    Args:
        max_retries: Maximum number of retry attempts after the first call
        delay: Initial delay between retries in seconds
        backoff: Multiplier applied to the delay after each failed attempt
        exceptions: Tuple of exceptions to catch and retry on

    Returns:
        Decorated function with retry logic
    """
    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            last_exception: Optional[Exception] = None

            for attempt in range(max_retries + 1):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    last_exception = e
                    if attempt < max_retries:
                        wait_time = delay * (backoff ** attempt)
                        logger.debug(
                            f"Attempt {attempt + 1} failed: {str(e)}. "
                            f"Retrying in {wait_time:.2f}s..."
                        )
                        if wait_time > 0:
                            time.sleep(wait_time)

            raise RetryError(
                f"Failed after {max_retries + 1} attempts. Last error: {str(last_exception)}"
            ) from last_exception
        return wrapper
    return decorator
