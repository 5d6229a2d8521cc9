import functools
import logging
import time
from typing import Callable, TypeVar

import httpx

from .connection import reset_client

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Dropped or refused connections; anything else is a real query error
RETRYABLE_ERRORS = (httpx.RemoteProtocolError, httpx.ConnectError, httpx.ReadError)


def with_retry(max_retries: int = 2, delay: float = 0.1) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Retry a repository call on transient connection errors.

    The thread's client is rebuilt between attempts and the wait doubles
    each time. Query errors propagate immediately.

    Args:
        max_retries: Attempts after the first one (default 2)
        delay: Initial wait in seconds (default 0.1)
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> T:
            attempt = 0
            while True:
                try:
                    return func(*args, **kwargs)
                except RETRYABLE_ERRORS as e:
                    if attempt >= max_retries:
                        logger.error(f"Connection error in {func.__name__} after {max_retries} retries: {e}")
                        raise
                    attempt += 1
                    logger.warning(
                        f"Connection error in {func.__name__}, retrying ({attempt}/{max_retries}): {e}"
                    )
                    reset_client()
                    time.sleep(delay * 2 ** (attempt - 1))
        return wrapper
    return decorator
