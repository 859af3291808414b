"""Shared helpers for streamvault_rec."""

import time
import logging
from functools import wraps
from typing import TypeVar, Callable

logger = logging.getLogger(__name__)

T = TypeVar('T')


def retry_with_backoff(
    max_retries: int = 3,
    initial_delay: float = 1.0,
    backoff_factor: float = 2.0,
    exceptions: tuple = (Exception,),
    should_retry: Callable[[Exception], bool] | None = None,
    max_delay: float | None = None,
):
    """
    Retry a call with exponentially growing pauses.

    Args:
        max_retries: Total number of attempts
        initial_delay: Pause before the second attempt, in seconds
        backoff_factor: Multiplier applied to the pause after each failure
        exceptions: Exception types that are candidates for a retry
        should_retry: Optional filter on a caught exception; False re-raises at once
        max_delay: Upper bound on a single pause

    Anything outside `exceptions`, or rejected by `should_retry`, propagates
    from the first attempt. After the last attempt the final error is raised.
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args, **kwargs) -> T:
            delay = initial_delay
            attempt = 1
            while True:
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if should_retry is not None and not should_retry(e):
                        raise
                    if attempt >= max_retries:
                        logger.error(f"{func.__name__} failed after {max_retries} attempts: {e}")
                        raise

                    pause = min(delay, max_delay) if max_delay is not None else delay
                    logger.warning(
                        f"{func.__name__} attempt {attempt}/{max_retries} failed ({e}); "
                        f"retrying in {pause:.1f}s"
                    )
                    time.sleep(pause)
                    delay *= backoff_factor
                    attempt += 1

        return wrapper
    return decorator
