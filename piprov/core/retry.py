"""Retry decorator for flaky network steps (downloads, remote installers)."""
import functools
import time
from typing import Tuple, Type

from piprov.core.logger import get_logger

logger = get_logger(__name__)


def _delays(delay: float, backoff: float):
    while True:
        yield delay
        delay *= backoff


def retry(
    max_attempts: int = 3,
    delay: float = 2.0,
    backoff: float = 2.0,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
):
    """Retry the wrapped call with exponential backoff.

    Args:
        max_attempts: Total number of attempts before the last error propagates
        delay: Seconds to wait after the first failure
        backoff: Multiplier applied to the wait after each failure
        exceptions: Exception types that trigger another attempt

    Example:
        @retry(max_attempts=3, delay=5, exceptions=(requests.RequestException,))
        def fetch_nvm_installer(url):
            ...
    """

    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            waits = _delays(delay, backoff)
            attempt = 1
            while True:
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt >= max_attempts:
                        logger.error(f"{func.__name__} gave up after {max_attempts} attempts: {e}")
                        raise
                    wait = next(waits)
                    logger.warning(
                        f"{func.__name__} failed (attempt {attempt}/{max_attempts}): {e}; "
                        f"retrying in {wait:.1f}s"
                    )
                    time.sleep(wait)
                    attempt += 1

        return wrapper

    return decorator
