"""
Resilience patterns module.

Components:
    - RetryPolicy: Exponential backoff configuration with jitter
    - retry_async: Retry an async operation on retryable normalized errors
    - @with_retry_async: Decorator form
"""

from .retry import (
    DEFAULT_RETRY,
    RetryPolicy,
    RetryPredicate,
    retry_async,
    with_retry_async,
)

__all__ = [
    "RetryPolicy",
    "RetryPredicate",
    "retry_async",
    "with_retry_async",
    "DEFAULT_RETRY",
]
