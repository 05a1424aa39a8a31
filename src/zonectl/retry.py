"""
Retry utilities with configurable exponential backoff.

Provider calls are wrapped with :func:`api_call`, which waits out rate
limiting (1s doubling, giving up once 300s of waiting would be exceeded)
and retries transient failures twice before letting them surface.
"""

from __future__ import annotations

import logging
import time
from functools import wraps
from typing import Any, Callable

from .models import RateLimitedError, TransientAPIError

logger = logging.getLogger("zonectl")

RATE_LIMIT_GIVE_UP = 300.0


def retry(
    max_attempts: int | None = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    backoff_factor: float = 2.0,
    retryable_exceptions: tuple[type[BaseException], ...] = (TransientAPIError,),
    max_elapsed: float | None = None,
) -> Callable:
    """Decorator: retry a function on the given exceptions with exponential backoff.

    Args:
        max_attempts: Maximum number of total attempts, or None for no limit.
        base_delay: Initial delay in seconds before the first retry.
        max_delay: Cap on the delay between retries.
        backoff_factor: Multiplier applied to the delay after each retry.
        retryable_exceptions: Exception types that trigger a retry.
        max_elapsed: Give up once the total time slept would exceed this.

    Returns:
        Decorated function that retries on the listed failures.
    """

    def decorator(fn: Callable) -> Callable:
        @wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            delay = base_delay
            slept = 0.0
            attempt = 0
            while True:
                attempt += 1
                try:
                    return fn(*args, **kwargs)
                except retryable_exceptions as exc:
                    exhausted = max_attempts is not None and attempt >= max_attempts
                    if not exhausted and max_elapsed is not None and slept + delay > max_elapsed:
                        exhausted = True
                    if exhausted:
                        logger.error("Giving up on %s after %d attempts: %s", fn.__qualname__, attempt, exc)
                        raise
                    logger.warning(
                        "Attempt %d for %s failed (%s), retrying in %.1fs",
                        attempt,
                        fn.__qualname__,
                        exc,
                        delay,
                    )
                    time.sleep(delay)
                    slept += delay
                    delay = min(delay * backoff_factor, max_delay)

        return wrapper

    return decorator


def api_call(fn: Callable) -> Callable:
    """Wrap a provider call with rate-limit and transient-error retries."""
    rate_limited = retry(
        max_attempts=None,
        base_delay=1.0,
        max_delay=RATE_LIMIT_GIVE_UP,
        retryable_exceptions=(RateLimitedError,),
        max_elapsed=RATE_LIMIT_GIVE_UP,
    )
    transient = retry(max_attempts=3, base_delay=1.0, retryable_exceptions=(TransientAPIError,))
    return transient(rate_limited(fn))
