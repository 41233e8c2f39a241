"""
Retry utilities with normalized-error-aware handling.

Every failure is normalized first, then the retry decision is made on it:
- Retryable errors (network, request setup, 408/429/5xx): exponential backoff
  with jitter, up to max_retries extra attempts
- Everything else (other 4xx, unknown errors): fail immediately
- 401 is never retried here; the refresh coordinator owns it

Suspension uses asyncio.sleep so other requests keep running on the loop.
"""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from functools import wraps
from typing import Any, TypeVar

from careflow.errors.exceptions import NormalizedError
from careflow.errors.normalizer import normalize

logger = logging.getLogger(__name__)

T = TypeVar("T")

RetryPredicate = Callable[[NormalizedError, int], bool]


@dataclass
class RetryPolicy:
    """Configuration for retry behavior."""

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0

    # Jitter is drawn uniformly from [0, jitter_ratio * delay]
    jitter_ratio: float = 0.3

    # Overrides the normalized error's retryable flag when set
    predicate: RetryPredicate | None = None

    def __post_init__(self):
        """Ensure proper types from YAML/env vars."""
        self.max_retries = int(self.max_retries)
        self.base_delay = float(self.base_delay)
        self.max_delay = float(self.max_delay)
        self.jitter_ratio = float(self.jitter_ratio)
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")

    def backoff_delay(self, attempt: int) -> float:
        """
        Delay before jitter for a 0-indexed attempt.

        Non-decreasing in attempt and capped at max_delay.
        """
        return min(self.base_delay * (2**attempt), self.max_delay)

    def get_delay(self, attempt: int, rng: random.Random | None = None) -> float:
        """
        Calculate delay with additive jitter to prevent thundering herd.

        Args:
            attempt: 0-indexed attempt number
            rng: Random source; pass a seeded random.Random for determinism

        Returns:
            Delay in seconds
        """
        delay = self.backoff_delay(attempt)
        uniform = rng.uniform if rng is not None else random.uniform
        return delay + uniform(0, self.jitter_ratio * delay)

    def should_retry(self, error: NormalizedError, attempt: int) -> bool:
        """
        Determine if error should be retried.

        Args:
            error: The normalized error
            attempt: 0-indexed current attempt

        Returns:
            True if should retry
        """
        if attempt >= self.max_retries:
            return False

        if self.predicate is not None:
            return bool(self.predicate(error, attempt))

        return error.retryable


# Default configuration
DEFAULT_RETRY = RetryPolicy()


def _log_retry_failure(
    operation_name: str,
    error: NormalizedError,
    attempt: int,
    policy: RetryPolicy,
) -> None:
    """Log a non-retryable error or max-retries exhaustion."""
    extra = {
        "operation": operation_name,
        "attempt": attempt + 1,
        "max_attempts": policy.max_retries + 1,
        **error.to_dict(),
    }

    if attempt < policy.max_retries:
        logger.warning(
            "Non-retryable error for %s, not retrying: %s",
            operation_name,
            error.message[:200],
            extra=extra,
        )
        return

    if attempt > 0:
        logger.error(
            "Max retries exhausted for %s: %s",
            operation_name,
            error.message[:200],
            extra=extra,
        )


def _safe_invoke_on_retry(
    on_retry: Callable[[NormalizedError, int, float], None],
    error: NormalizedError,
    attempt: int,
    delay: float,
    operation_name: str,
) -> None:
    """Call the on_retry callback, swallowing and logging any errors."""
    try:
        on_retry(error, attempt, delay)
    except Exception as cb_err:
        logger.warning(
            "Error in on_retry callback for %s: %s",
            operation_name,
            str(cb_err)[:100],
            extra={
                "operation": operation_name,
                "callback_error": str(cb_err)[:100],
            },
        )


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy | None = None,
    *,
    rng: random.Random | None = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    on_retry: Callable[[NormalizedError, int, float], None] | None = None,
    operation_name: str | None = None,
) -> T:
    """
    Run an async operation, retrying retryable failures with backoff.

    Args:
        operation: Zero-argument coroutine function to attempt
        policy: Retry policy (defaults to DEFAULT_RETRY)
        rng: Random source for jitter
        sleep: Awaitable sleep used between attempts
        on_retry: Callback before each retry (error, attempt, delay)
        operation_name: Name used in log records

    Returns:
        The operation's result

    Raises:
        NormalizedError: The last failure, once retries stop
    """
    if policy is None:
        policy = DEFAULT_RETRY
    name = operation_name or getattr(operation, "__name__", "operation")

    attempt = 0
    while True:
        try:
            result = await operation()
        except Exception as e:
            error = normalize(e)

            if not policy.should_retry(error, attempt):
                _log_retry_failure(name, error, attempt, policy)
                if error is e:
                    raise
                raise error from e

            delay = policy.get_delay(attempt, rng)
            logger.warning(
                "Retryable error for %s, will retry",
                name,
                extra={
                    "operation": name,
                    "attempt": attempt + 1,
                    "max_attempts": policy.max_retries + 1,
                    "delay_seconds": round(delay, 2),
                    **error.to_dict(),
                },
            )

            if on_retry:
                _safe_invoke_on_retry(on_retry, error, attempt, delay, name)

            await sleep(delay)
            attempt += 1
            continue

        if attempt > 0:
            logger.info(
                "Retry succeeded for %s after %d attempts",
                name,
                attempt + 1,
                extra={
                    "operation": name,
                    "attempt": attempt + 1,
                    "total_attempts": attempt + 1,
                },
            )
        return result


def with_retry_async(
    policy: RetryPolicy | None = None,
    on_retry: Callable[[NormalizedError, int, float], None] | None = None,
):
    """
    Decorator for retrying async functions with backoff.

    Usage:
        @with_retry_async(RetryPolicy(max_retries=5))
        async def fetch_patients():
            ...
    """

    def decorator(func: Callable[..., Awaitable[T]]):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            return await retry_async(
                lambda: func(*args, **kwargs),
                policy,
                on_retry=on_retry,
                operation_name=func.__name__,
            )

        return wrapper

    return decorator


__all__ = [
    "RetryPolicy",
    "RetryPredicate",
    "retry_async",
    "with_retry_async",
    "DEFAULT_RETRY",
]
