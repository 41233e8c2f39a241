"""
Error normalization and exception hierarchy.

Provides:
- ErrorKind enum for classifying failures
- NormalizedError hierarchy, the only error type callers ever see
- Raw transport exceptions raised below the normalizer
- normalize() and message helpers
"""

from careflow.errors.exceptions import (
    ConfigurationError,
    HttpStatusError,
    NetworkError,
    NormalizedError,
    RequestSetupError,
    RequestSetupFault,
    ResponseError,
    TransportError,
    UnknownError,
    is_retryable_status,
)
from careflow.errors.normalizer import (
    is_retryable_error,
    normalize,
    user_friendly_message,
)
from careflow.types import ErrorKind

__all__ = [
    # Enums
    "ErrorKind",
    # Normalized errors
    "NormalizedError",
    "NetworkError",
    "RequestSetupError",
    "HttpStatusError",
    "UnknownError",
    # Raw transport errors
    "TransportError",
    "ResponseError",
    "RequestSetupFault",
    "ConfigurationError",
    # Utilities
    "normalize",
    "is_retryable_error",
    "is_retryable_status",
    "user_friendly_message",
]
