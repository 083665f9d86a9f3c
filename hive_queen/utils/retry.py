"""Retry utilities for the text-generation client.

The governance core never retries on its own; the only retrying code path
is the text-generation client, which wraps its HTTP call with
``async_retry``. Retries are restricted to errors the shared transient
predicate accepts, so a 401 or a malformed request fails on the first try.

Key Exports:
    async_retry: Decorator for adding retry logic to async functions.

Example:
    >>> from hive_queen.utils.retry import async_retry
    >>>
    >>> @async_retry(max_attempts=3, backoff_factor=2.0)
    ... async def complete(payload: dict) -> dict:
    ...     response = await client.post("/chat/completions", json=payload)
    ...     response.raise_for_status()
    ...     return response.json()

Backoff Formula:
    delay = backoff_factor ** attempt_number
    For backoff_factor=2.0: 2s, 4s, 8s, 16s, ...
"""

import asyncio
import functools
from collections.abc import Callable
from typing import Any, TypeVar

import structlog

from hive_queen.utils.transient import is_transient_error

log = structlog.get_logger(__name__)

T = TypeVar("T")


def async_retry(
    max_attempts: int = 3,
    backoff_factor: float = 2.0,
    exceptions: tuple[type[Exception], ...] = (Exception,),
    retry_if: Callable[[BaseException], bool] = is_transient_error,
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Decorator for async functions with exponential backoff retry logic.

    Args:
        max_attempts: Maximum number of attempts before giving up. Default
            is 3 (original attempt + 2 retries).
        backoff_factor: Base for exponential backoff calculation. The delay
            before attempt N is backoff_factor^N seconds.
        exceptions: Exception types eligible for a retry. Anything else
            propagates immediately.
        retry_if: Predicate applied to a caught exception; a falsy result
            re-raises immediately. Defaults to the shared transient-error
            predicate.

    Returns:
        A decorator function that wraps async functions with retry logic.

    Raises:
        The last caught exception if all retry attempts are exhausted, or
        the first exception ``retry_if`` rejects.

    Note:
        Each retry is logged at WARNING level and exhausted retries at
        ERROR level.
    """

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            for attempt in range(1, max_attempts + 1):
                try:
                    return await func(*args, **kwargs)
                except exceptions as e:
                    if not retry_if(e):
                        log.info("retry_skipped_non_transient", function=func.__name__, error=str(e))
                        raise

                    if attempt == max_attempts:
                        log.error(
                            "retry_exhausted",
                            function=func.__name__,
                            attempts=attempt,
                            error=str(e),
                        )
                        raise

                    delay = backoff_factor**attempt
                    log.warning(
                        "retry_attempt",
                        function=func.__name__,
                        attempt=attempt,
                        max_attempts=max_attempts,
                        delay=delay,
                        error=str(e),
                    )
                    await asyncio.sleep(delay)

            raise RuntimeError("Retry logic error")

        return wrapper

    return decorator
