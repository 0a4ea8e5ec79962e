# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
Retry Utilities - Implement retry logic with exponential backoff
"""
import time
import logging
from functools import wraps
from typing import Callable, TypeVar, Any

import requests

logger = logging.getLogger(__name__)

T = TypeVar('T')

# Transport-level failures worth retrying inside a single sync cycle
TRANSIENT_ERRORS = (
    requests.exceptions.ConnectionError,
    requests.exceptions.Timeout,
)


def backoff_delay(attempt: int, base_delay: float, max_delay: float,
                  exponential_base: float = 2.0) -> float:
    """Delay before retry number ``attempt`` (0-based), capped at max_delay"""
    return min(base_delay * (exponential_base ** attempt), max_delay)


def retry_with_backoff(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    retry_on: tuple = TRANSIENT_ERRORS
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Decorator that implements retry logic with exponential backoff

    Args:
        max_retries: Maximum number of retry attempts
        base_delay: Initial delay between retries in seconds
        max_delay: Maximum delay between retries in seconds
        exponential_base: Base for exponential backoff calculation
        retry_on: Tuple of exceptions to retry on

    Returns:
        Decorated function that will retry on specified exceptions
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            attempt = 0

            while True:
                try:
                    if attempt > 0:
                        logger.info(f"Retry attempt {attempt}/{max_retries} for {func.__name__}")

                    result = func(*args, **kwargs)

                    if attempt > 0:
                        logger.info(f"Retry successful for {func.__name__} after {attempt} attempts")

                    return result

                except retry_on as e:
                    if attempt >= max_retries:
                        logger.error(
                            f"Max retries ({max_retries}) exceeded for {func.__name__}. "
                            f"Final error: {str(e)}"
                        )
                        raise

                    delay = backoff_delay(attempt, base_delay, max_delay, exponential_base)

                    logger.warning(
                        f"Error in {func.__name__} (attempt {attempt + 1}/{max_retries + 1}): "
                        f"{type(e).__name__}: {str(e)}. Retrying in {delay:.1f} seconds..."
                    )

                    time.sleep(delay)
                    attempt += 1

        return wrapper
    return decorator
