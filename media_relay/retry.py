"""Timeout + retry policy shared by every outbound Telegram call."""

import asyncio
import datetime as dt
import logging
from typing import Any, Awaitable, Callable

from telegram.error import BadRequest, NetworkError, RetryAfter, TimedOut
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

log = logging.getLogger(__name__)

SIZE_STEP_BYTES = 10 * 1024 * 1024
MAX_TIMEOUT_FACTOR = 5


def is_transient(exc: BaseException) -> bool:
    """Timeouts and connectivity errors are retried; rejections are not."""
    if isinstance(exc, (TimedOut, RetryAfter, asyncio.TimeoutError)):
        return True
    if isinstance(exc, BadRequest):
        return False
    return isinstance(exc, NetworkError)


def send_timeout(size_bytes: int, base: float) -> float:
    """One extra ``base`` interval per started 10 MB, capped at 5x ``base``."""
    steps = -(-max(size_bytes, 0) // SIZE_STEP_BYTES)
    return base * min(1 + steps, MAX_TIMEOUT_FACTOR)


def flood_aware(fallback: Callable) -> Callable:
    """Wait at least as long as Telegram's flood control demands after ``RetryAfter``."""

    def wait(retry_state) -> float:
        delay = fallback(retry_state)
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        if isinstance(exc, RetryAfter):
            retry_after = exc.retry_after
            if isinstance(retry_after, dt.timedelta):
                retry_after = retry_after.total_seconds()
            delay = max(delay, float(retry_after))
        return delay

    return wait


def _log_retry(retry_state) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    log.warning("Attempt %d failed (%s), retrying", retry_state.attempt_number, exc)


async def call_with_retry(
    func: Callable[..., Awaitable[Any]],
    *args: Any,
    timeout: float,
    attempts: int = 3,
    backoff: float = 2.0,
    retryable: Callable[[BaseException], bool] = is_transient,
    **kwargs: Any,
) -> Any:
    """Await ``func(*args, **kwargs)`` under ``timeout``.

    Failures for which ``retryable`` is true are retried up to ``attempts``
    times in total with exponential backoff; anything else, or the last
    failure, is re-raised unchanged.
    """
    result = None
    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(max(attempts, 1)),
        wait=flood_aware(wait_exponential(multiplier=backoff, max=60)),
        retry=retry_if_exception(retryable),
        before_sleep=_log_retry,
        reraise=True,
    ):
        with attempt:
            result = await asyncio.wait_for(func(*args, **kwargs), timeout)
    return result
