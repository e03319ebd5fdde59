"""
Retry with exponential backoff for provider calls.

Backoff is driven by tenacity. Providers signal throttling with HTTP 429.
The OpenAI and Anthropic SDKs raise RateLimitError subclasses carrying
status_code=429; other clients attach the response object instead. is_rate_limit_error() recognizes all
of these without importing any provider SDK.

Usage:
    result = await call_with_backoff(
        lambda: model.aembed_query(text),
        attempts=3,
        initial_delay=1.0,
        timeout=30.0,
        should_retry=is_rate_limit_error,
    )
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from langchain_core.rate_limiters import BaseRateLimiter
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

T = TypeVar("T")

logger = logging.getLogger(__name__)


def provider_status(exc: BaseException) -> Optional[int]:
    """Best-effort upstream status code of a provider exception."""
    status = getattr(exc, "status_code", None)
    if isinstance(status, int):
        return status
    response = getattr(exc, "response", None)
    status = getattr(response, "status_code", None)
    if isinstance(status, int):
        return status
    return None


def is_rate_limit_error(exc: BaseException) -> bool:
    """True for HTTP 429 equivalents from any provider client."""
    if provider_status(exc) == 429:
        return True
    return type(exc).__name__ == "RateLimitError"


class RetryExhausted(Exception):
    """
    Raised when every attempt failed with a retryable error.

    last_error is the exception from the final attempt. Callers translate
    this into the service error of their own stage.
    """

    def __init__(self, attempts: int, last_error: BaseException) -> None:
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Gave up after {attempts} attempts: {last_error}")


def _log_before_sleep(description: str, attempts: int) -> Callable[[RetryCallState], None]:
    def log(retry_state: RetryCallState) -> None:
        logger.warning(
            "%s failed (attempt %d/%d), retrying in %.1fs: %s",
            description,
            retry_state.attempt_number,
            attempts,
            retry_state.next_action.sleep,
            retry_state.outcome.exception(),
        )

    return log


async def call_with_backoff(
    call: Callable[[], Awaitable[T]],
    attempts: int,
    initial_delay: float,
    timeout: Optional[float],
    should_retry: Callable[[BaseException], bool],
    description: str = "provider call",
    rate_limiter: Optional[BaseRateLimiter] = None,
) -> T:
    """
    Await call(), retrying on retryable errors with doubling delays.

    Each attempt first acquires rate_limiter (when given), then runs bounded
    by timeout. Waiting for the limiter does not count against the timeout.
    A timeout is raised immediately as asyncio.TimeoutError and never
    retried, and neither is cancellation. Non-retryable errors propagate
    unchanged on the first occurrence.

    Raises:
        RetryExhausted: every attempt failed with a retryable error.
        asyncio.TimeoutError: an attempt exceeded timeout.
    """
    retrying = AsyncRetrying(
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=initial_delay, exp_base=2),
        retry=retry_if_exception(
            lambda e: isinstance(e, Exception)
            and not isinstance(e, asyncio.TimeoutError)
            and should_retry(e)
        ),
        before_sleep=_log_before_sleep(description, attempts),
        sleep=asyncio.sleep,
    )

    try:
        async for attempt in retrying:
            with attempt:
                if rate_limiter is not None:
                    await rate_limiter.aacquire()
                if timeout is None:
                    result = await call()
                else:
                    result = await asyncio.wait_for(call(), timeout=timeout)
    except RetryError as e:
        last_error = e.last_attempt.exception()
        raise RetryExhausted(attempts, last_error) from last_error
    return result
