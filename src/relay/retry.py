"""Retry with exponential backoff for the generation backend.

Inference endpoints answer HTTP 503 while a model is loading. The helper in
this module re-invokes a remote call only for that signal, doubling the wait
after each attempt. Every other failure propagates to the caller unchanged,
so authentication and validation errors fail fast.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

SERVICE_UNAVAILABLE = 503

DEFAULT_MAX_RETRIES = 3
DEFAULT_INITIAL_DELAY = 5.0


def status_code_of(error: BaseException) -> Optional[int]:
    """Extract the HTTP status carried by an exception, if any.

    Looks at a ``status_code`` attribute first (our own errors and the
    openai SDK), then at an attached ``response.status_code`` (httpx).
    """
    status = getattr(error, "status_code", None)
    if isinstance(status, int):
        return status

    response: Any = getattr(error, "response", None)
    status = getattr(response, "status_code", None)
    if isinstance(status, int):
        return status
    return None


def is_service_unavailable(error: BaseException) -> bool:
    return status_code_of(error) == SERVICE_UNAVAILABLE


async def retry_on_unavailable(
    operation: Callable[[], Awaitable[T]],
    max_retries: int = DEFAULT_MAX_RETRIES,
    initial_delay: float = DEFAULT_INITIAL_DELAY,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> T:
    """Invoke ``operation``, retrying on HTTP 503 with exponential backoff.

    The first call happens immediately. After each 503 failure, while
    retries remain, the helper waits ``delay`` seconds and tries again with
    the delay doubled. With the defaults the total wait is bounded by
    5 + 10 + 20 = 35 seconds.

    Args:
        operation: Zero-argument coroutine function making one remote call.
        max_retries: Maximum number of retries after the first attempt.
        initial_delay: Wait before the first retry, in seconds.
        sleep: Awaitable sleep function, injectable for tests.

    Returns:
        The result of the first successful invocation.

    Raises:
        Exception: The failure of the last attempt, unchanged, when it is
            not a 503 or the retry budget is exhausted.
    """
    retries_left = max_retries
    delay = initial_delay
    attempt = 1

    while True:
        try:
            return await operation()
        except Exception as e:
            if retries_left <= 0 or not is_service_unavailable(e):
                raise

            logger.warning(
                "Backend unavailable, retrying in %.1f seconds",
                delay,
                extra={
                    "attempt": attempt,
                    "retries_left": retries_left,
                    "delay": delay,
                },
            )
            await sleep(delay)
            retries_left -= 1
            delay *= 2
            attempt += 1
