"""Async retry decorator used for startup connectivity checks.

Example:
    @retry(max_attempts=5, initial_delay=1.0, stop_after_delay=60.0)
    async def init_database() -> None:
        ...
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from functools import wraps
from typing import TYPE_CHECKING

from outbox_publisher.infra.metrics.tracking import (
    track_retry_attempt,
    track_retry_exhausted,
    track_retry_success,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class RetryError(Exception):
    """Raised once an operation has used up its attempts or its time budget."""

    def __init__(self, last_exception: Exception, attempts: int, elapsed: float) -> None:
        self.last_exception = last_exception
        self.attempts = attempts
        self.elapsed = elapsed
        super().__init__(f"Failed after {attempts} attempts in {elapsed:.1f}s. Last error: {last_exception}")


def _backoff_delay(
    attempt: int,
    *,
    initial_delay: float,
    max_delay: float,
    exponential_base: float,
    jitter: bool,
) -> float:
    delay = initial_delay * exponential_base ** (attempt - 1)
    if jitter:
        delay *= random.uniform(0.5, 1.5)  # noqa: S311
    return min(delay, max_delay)


def retry[**P, R](
    max_attempts: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
    exceptions: tuple[type[Exception], ...] = (Exception,),
    stop_after_delay: float | None = None,
    operation: str | None = None,
) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]:
    """Retry an async callable on ``exceptions``.

    Gives up after ``max_attempts`` calls or once ``stop_after_delay``
    seconds have passed since the first call, whichever comes first.

    Raises:
        RetryError: Wrapping the last exception when retries run out.
        ValueError: If ``max_attempts`` is less than 1.
    """
    if max_attempts < 1:
        msg = "max_attempts must be at least 1"
        raise ValueError(msg)

    def decorator(func: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
        name = operation or func.__name__

        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            started = time.monotonic()
            attempt = 0

            while True:
                attempt += 1
                try:
                    result = await func(*args, **kwargs)
                except exceptions as e:
                    elapsed = time.monotonic() - started
                    out_of_time = stop_after_delay is not None and elapsed >= stop_after_delay
                    if attempt >= max_attempts or out_of_time:
                        track_retry_exhausted(name)
                        logger.error(
                            "All retry attempts exhausted for %s",
                            name,
                            extra={"operation": name, "attempts": attempt, "last_exception": str(e)},
                        )
                        raise RetryError(e, attempt, elapsed) from e

                    delay = _backoff_delay(
                        attempt,
                        initial_delay=initial_delay,
                        max_delay=max_delay,
                        exponential_base=exponential_base,
                        jitter=jitter,
                    )
                    if stop_after_delay is not None:
                        delay = min(delay, max(stop_after_delay - elapsed, 0.0))
                    track_retry_attempt(name, attempt + 1)
                    logger.warning(
                        "Retrying %s after %.2fs (attempt %d/%d)",
                        name,
                        delay,
                        attempt,
                        max_attempts,
                        extra={"operation": name, "delay": delay, "exception": str(e)},
                    )
                    await asyncio.sleep(delay)
                else:
                    if attempt > 1:
                        track_retry_success(name, attempt)
                    return result

        return wrapper

    return decorator
