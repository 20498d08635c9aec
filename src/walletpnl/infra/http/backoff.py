"""Retry-with-exponential-backoff wrapper for upstream calls.

Only transient failures are retried: HTTP 429 and timeouts. Anything else, or
the last transient failure once attempts run out, propagates unchanged.
"""

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

import httpx
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt, wait_exponential

from walletpnl.exceptions import RateLimitError

logger = logging.getLogger(__name__)

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[None]]


def is_transient(exc: BaseException) -> bool:
    """True for rate-limit and timeout failures."""
    if isinstance(exc, (RateLimitError, httpx.TimeoutException)):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code == 429
    return False


def _log_retry(state: RetryCallState) -> None:
    delay = state.next_action.sleep if state.next_action else 0
    logger.warning(
        "Rate limited, retrying in %.1fs (attempt %d): %s",
        delay,
        state.attempt_number,
        state.outcome.exception() if state.outcome else None,
    )


async def call_with_backoff(
    fn: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    initial_delay: float = 1.0,
    sleep: SleepFn = asyncio.sleep,
) -> T:
    """Run `fn`, sleeping initial_delay * 2**attempt between transient failures.

    With the defaults the waits are 1s then 2s; there is no wait after the last attempt.
    """
    retrying = AsyncRetrying(
        retry=retry_if_exception(is_transient),
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=initial_delay, exp_base=2),
        before_sleep=_log_retry,
        sleep=sleep,
        reraise=True,
    )
    return await retrying(fn)
