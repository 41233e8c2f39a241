"""
Error normalization.

normalize() maps any raw failure (transport exception, aiohttp error, timeout,
arbitrary exception or thrown object) into exactly one NormalizedError. It is
total: it never raises and never returns None.
"""

import asyncio
from collections.abc import Mapping
from typing import Any

import aiohttp

from careflow.errors.exceptions import (
    HttpStatusError,
    NetworkError,
    NormalizedError,
    RequestSetupError,
    RequestSetupFault,
    ResponseError,
    UnknownError,
)
from careflow.types import ErrorKind

NETWORK_ERROR_MESSAGE = (
    "Unable to reach the server. Check your internet connection."
)
REQUEST_SETUP_MESSAGE = "The request could not be prepared."
GENERIC_ERROR_MESSAGE = "An error occurred."
UNEXPECTED_ERROR_MESSAGE = "An unexpected error occurred."

# User-facing messages keyed by status code
STATUS_MESSAGES = {
    401: "Your session has expired. Please sign in again.",
    403: "You do not have permission to perform this action.",
    404: "The requested resource was not found.",
    429: "Too many requests. Please wait a moment and try again.",
}
SERVER_ERROR_MESSAGE = "A server error occurred. Please try again later."


def _safe_str(value: Any) -> str:
    try:
        return str(value)
    except Exception:
        return ""


def _body_field(body: Any, key: str) -> Any:
    if isinstance(body, Mapping):
        return body.get(key)
    return None


def _validation_fields(body: Any) -> dict[str, list[str]] | None:
    """Extract {field: [messages]} from an error body's ``errors`` entry."""
    errors = _body_field(body, "errors")
    if not isinstance(errors, Mapping) or not errors:
        return None

    fields: dict[str, list[str]] = {}
    for field_name, messages in errors.items():
        if isinstance(messages, (list, tuple)):
            fields[str(field_name)] = [_safe_str(m) for m in messages]
        else:
            fields[str(field_name)] = [_safe_str(messages)]
    return fields


def _from_response(
    status: int, body: Any, transport_message: str, cause: Any
) -> HttpStatusError:
    body_message = _body_field(body, "message")
    message = (
        body_message
        if isinstance(body_message, str) and body_message
        else transport_message or GENERIC_ERROR_MESSAGE
    )
    body_code = _body_field(body, "code")
    return HttpStatusError(
        message,
        status_code=status,
        code=body_code if isinstance(body_code, str) and body_code else None,
        validation_fields=_validation_fields(body),
        cause=cause,
    )


def _normalize(error: Any) -> NormalizedError:
    # Already normalized
    if isinstance(error, NormalizedError):
        return error

    # Server responded with a status code
    if isinstance(error, ResponseError):
        return _from_response(error.status, error.body, error.message, error)

    if isinstance(error, aiohttp.ClientResponseError):
        return _from_response(error.status, None, _safe_str(error.message), error)

    # Failed before sending
    if isinstance(error, RequestSetupFault):
        return RequestSetupError(
            error.message or REQUEST_SETUP_MESSAGE, cause=error
        )

    if isinstance(error, aiohttp.InvalidURL):
        return RequestSetupError(
            f"Invalid request URL: {_safe_str(error.url)}", cause=error
        )

    # Sent, but no response reached us
    if isinstance(
        error, (aiohttp.ClientError, asyncio.TimeoutError, ConnectionError)
    ):
        return NetworkError(NETWORK_ERROR_MESSAGE, cause=error)

    # Anything else, including values that are not exceptions at all
    if isinstance(error, BaseException):
        message = _safe_str(error) or UNEXPECTED_ERROR_MESSAGE
        return UnknownError(message, cause=error)

    return UnknownError(UNEXPECTED_ERROR_MESSAGE, cause=error)


def normalize(error: Any) -> NormalizedError:
    """
    Normalize any raw failure into exactly one NormalizedError.

    Classification order:
        1. Transport responded with a status -> HttpStatusError
        2. Sent without a response (connection, payload, timeout) -> NetworkError
        3. Failed before sending -> RequestSetupError
        4. Already a NormalizedError -> returned unchanged
        5. Anything else -> UnknownError

    Args:
        error: Any raised exception or thrown value

    Returns:
        The NormalizedError for this failure
    """
    try:
        return _normalize(error)
    except Exception:
        return UnknownError(UNEXPECTED_ERROR_MESSAGE, cause=error)


def is_retryable_error(error: Any) -> bool:
    """Check if a raw or normalized error may succeed on a blind retry."""
    return normalize(error).retryable


def user_friendly_message(error: Any) -> str:
    """
    Pick the message to show an end user for a failure.

    Validation-field messages win when present; otherwise a generic per-status
    message is used, falling back to the error's own message.
    """
    normalized = normalize(error)

    if normalized.kind == ErrorKind.NETWORK:
        return NETWORK_ERROR_MESSAGE

    if normalized.validation_fields:
        for messages in normalized.validation_fields.values():
            if messages:
                return messages[0]

    status = normalized.status_code
    if status is not None:
        if status in STATUS_MESSAGES:
            return STATUS_MESSAGES[status]
        if status >= 500:
            return SERVER_ERROR_MESSAGE

    return normalized.message or GENERIC_ERROR_MESSAGE


__all__ = [
    "NETWORK_ERROR_MESSAGE",
    "GENERIC_ERROR_MESSAGE",
    "UNEXPECTED_ERROR_MESSAGE",
    "normalize",
    "is_retryable_error",
    "user_friendly_message",
]
