"""
Resilience helpers for external calls.

Two flavors, both built on tenacity:

- call_with_retry: async, for long-latency network calls (AI services).
  Each attempt runs under its own timeout; transient failures are retried
  with exponential backoff and jitter; exhaustion raises ExternalServiceError.
- retry_transient: sync decorator for storage calls whose failures are
  classified by a predicate (e.g. Cosmos 429/503).

Cancellation is never retried: asyncio.CancelledError propagates untouched
so an abandoned request stops its pipeline immediately.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Tuple, Type, TypeVar

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry,
    retry_if_exception,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from .errors import ExternalServiceError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryPolicy:
    """
    Timeout and retry budget for one external call.

    Attributes:
        timeout_seconds: Per-attempt timeout
        max_retries: Retries after the first attempt (total attempts = max_retries + 1)
        initial_backoff: First backoff delay in seconds
        max_backoff: Upper bound for a single backoff delay
        jitter: Maximum random jitter added to each delay
    """
    timeout_seconds: float = 8.0
    max_retries: int = 2
    initial_backoff: float = 0.5
    max_backoff: float = 4.0
    jitter: float = 0.5

    @property
    def attempts(self) -> int:
        return max(1, self.max_retries + 1)


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    *,
    name: str,
    policy: RetryPolicy,
    retry_on: Tuple[Type[BaseException], ...] = (),
) -> T:
    """
    Run an async operation with a per-attempt timeout and bounded retries.

    Args:
        operation: Zero-argument coroutine factory (called once per attempt)
        name: Operation name used in logs and error messages
        policy: Timeout and retry budget
        retry_on: Exception types considered transient (timeouts always are)

    Returns:
        The operation's result

    Raises:
        ExternalServiceError: On timeout or transient failure after the budget is spent
    """
    transient = (asyncio.TimeoutError,) + tuple(retry_on)
    retrying = AsyncRetrying(
        stop=stop_after_attempt(policy.attempts),
        wait=wait_exponential_jitter(
            initial=policy.initial_backoff,
            max=policy.max_backoff,
            jitter=policy.jitter,
        ),
        retry=retry_if_exception_type(transient),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )

    try:
        async for attempt in retrying:
            with attempt:
                return await asyncio.wait_for(operation(), timeout=policy.timeout_seconds)
    except asyncio.TimeoutError as e:
        logger.error(f"{name} timed out after {policy.attempts} attempt(s)")
        raise ExternalServiceError(
            f"{name} timed out after {policy.timeout_seconds}s",
            {"operation": name, "attempts": policy.attempts},
        ) from e
    except transient as e:
        logger.error(f"{name} failed after {policy.attempts} attempt(s): {e}", exc_info=True)
        raise ExternalServiceError(
            f"{name} failed: {e}",
            {"operation": name, "attempts": policy.attempts},
        ) from e
    # AsyncRetrying with reraise=True never falls through
    raise ExternalServiceError(f"{name} produced no result", {"operation": name})


def retry_transient(
    is_transient: Callable[[BaseException], bool],
    attempts: int = 3,
    initial_backoff: float = 0.2,
    max_backoff: float = 2.0,
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    Decorator retrying a sync call while `is_transient(exc)` holds.

    The last exception is re-raised unchanged so callers can translate it.
    """
    return retry(
        retry=retry_if_exception(is_transient),
        stop=stop_after_attempt(attempts),
        wait=wait_exponential_jitter(initial=initial_backoff, max=max_backoff, jitter=initial_backoff),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
