"""
Retry utility functions with exponential backoff.
Categorizes errors as transient (retryable) or permanent (non-retryable).
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = structlog.get_logger()

T = TypeVar("T")


class TransientError(Exception):
    """Raised for transient/retryable errors (network issues, rate limits, 5xx)."""

    pass


class PermanentError(Exception):
    """Raised for permanent/non-retryable errors (4xx validation errors, auth failures)."""

    pass


# Network failures and timeouts; HTTP statuses are checked separately
RETRYABLE_EXCEPTIONS = (httpx.TransportError, TimeoutError, TransientError)


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff policy. ``max_retries`` counts retries after the first attempt."""

    max_retries: int = 3
    initial_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 30.0


def is_transient_error(exception: Exception) -> bool:
    """
    Determine if an exception represents a transient error that should be retried.

    Args:
        exception: The exception to check

    Returns:
        True if error is transient (retryable), False otherwise
    """
    if isinstance(exception, httpx.HTTPStatusError):
        status_code = exception.response.status_code
        return status_code >= 500 or status_code == 429
    return isinstance(exception, RETRYABLE_EXCEPTIONS)


async def call_with_retry(
    func: Callable[..., Awaitable[T]],
    *args,
    policy: RetryPolicy,
    **kwargs,
) -> T:
    """
    Await ``func(*args, **kwargs)``, retrying transient failures with exponential backoff.

    Raises:
        TransientError: retries exhausted, chained from the last underlying error
        PermanentError: the first non-retryable failure, chained from it
    """
    retrying = AsyncRetrying(
        stop=stop_after_attempt(policy.max_retries + 1),
        wait=wait_exponential(
            multiplier=policy.multiplier, min=policy.initial_delay, max=policy.max_delay
        ),
        retry=retry_if_exception_type(TransientError),
        reraise=True,
        before_sleep=_log_retry_attempt,
    )
    async for attempt in retrying:
        with attempt:
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                if is_transient_error(e):
                    # Wrap as TransientError to trigger retry
                    raise TransientError(f"Transient error: {str(e)}") from e
                raise PermanentError(f"Permanent error: {str(e)}") from e


def _log_retry_attempt(retry_state: RetryCallState):
    """Log retry attempt before sleeping."""
    if retry_state.outcome is not None:
        exception = retry_state.outcome.exception()
        logger.warning(
            "Retrying after transient error",
            attempt=retry_state.attempt_number,
            exception=str(exception),
            wait_time=retry_state.next_action.sleep if retry_state.next_action else 0,
        )
