"""
Unified exception hierarchy for the careflow HTTP client.

Two families live here:

- Raw transport exceptions (ResponseError, RequestSetupFault) raised by the
  transport layer. They carry whatever the transport observed and are never
  shown to callers directly.
- NormalizedError and its per-kind subclasses. Every failure that leaves the
  client is exactly one of these.
"""

from collections.abc import Mapping
from types import MappingProxyType
from typing import Any

from careflow.types import ErrorKind

# Retryable HTTP status codes besides the 5xx range
RETRYABLE_STATUSES = frozenset({408, 429})


def is_retryable_status(status_code: int) -> bool:
    """Retry 408, 429 and any 5xx. Never retry other 4xx, 401 included."""
    if status_code in RETRYABLE_STATUSES:
        return True
    return 500 <= status_code < 600


# =============================================================================
# Raw transport errors
# =============================================================================


class TransportError(Exception):
    """Base class for failures observed by the transport layer."""

    def __init__(self, message: str, request: Any = None):
        self.message = message
        self.request = request
        super().__init__(message)


class ResponseError(TransportError):
    """The server answered with an error status code."""

    def __init__(
        self,
        status: int,
        body: Any = None,
        headers: Mapping[str, str] | None = None,
        request: Any = None,
        message: str | None = None,
    ):
        super().__init__(
            message or f"Request failed with status code {status}", request
        )
        self.status = status
        self.body = body
        self.headers = dict(headers or {})


class RequestSetupFault(TransportError):
    """The request could not be built, so nothing was sent."""

    def __init__(
        self,
        message: str,
        request: Any = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message, request)
        self.cause = cause


class ConfigurationError(Exception):
    """Client configuration is invalid."""

    pass


# =============================================================================
# Normalized errors
# =============================================================================


class NormalizedError(Exception):
    """
    Base class for every error surfaced by the client.

    Attributes are read-only once constructed. Use derive() to obtain a copy
    with some fields changed.

    Attributes:
        kind: ErrorKind of this failure
        message: Human-readable description
        status_code: HTTP status for HTTP_STATUS errors, else None
        code: Short machine code (HTTP_404, NETWORK_ERROR, ...)
        retryable: Whether a blind retry may succeed
        validation_fields: Field name -> messages, from the error body
        cause: Original raw error
        session_ended: True when the error ended the authenticated session
    """

    kind: ErrorKind = ErrorKind.UNKNOWN
    default_code: str = "UNKNOWN_ERROR"
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        code: str | None = None,
        retryable: bool | None = None,
        validation_fields: Mapping[str, list[str]] | None = None,
        cause: Any = None,
        session_ended: bool = False,
    ):
        super().__init__(message)
        self._message = message
        self._status_code = status_code
        self._code = code or self.default_code
        self._retryable = (
            self.default_retryable if retryable is None else bool(retryable)
        )
        self._validation_fields = (
            MappingProxyType({k: list(v) for k, v in validation_fields.items()})
            if validation_fields
            else None
        )
        self._cause = cause
        self._session_ended = session_ended

    @property
    def message(self) -> str:
        return self._message

    @property
    def status_code(self) -> int | None:
        return self._status_code

    @property
    def code(self) -> str:
        return self._code

    @property
    def retryable(self) -> bool:
        return self._retryable

    @property
    def validation_fields(self) -> Mapping[str, list[str]] | None:
        return self._validation_fields

    @property
    def cause(self) -> Any:
        return self._cause

    @property
    def session_ended(self) -> bool:
        return self._session_ended

    def derive(self, **changes: Any) -> "NormalizedError":
        """Return a new error of the same class with some fields replaced."""
        fields = {
            "message": self._message,
            "status_code": self._status_code,
            "code": self._code,
            "retryable": self._retryable,
            "validation_fields": self._validation_fields,
            "cause": self._cause,
            "session_ended": self._session_ended,
        }
        fields.update(changes)
        message = fields.pop("message")
        return type(self)(message, **fields)

    def to_dict(self) -> dict[str, Any]:
        """Log-friendly representation (no cause object)."""
        return {
            "error_kind": self.kind.value,
            "error_code": self._code,
            "http_status": self._status_code,
            "error_message": self._message,
            "retryable": self._retryable,
            "session_ended": self._session_ended,
        }

    def __str__(self) -> str:
        parts = [self._message]
        if self._cause is not None and isinstance(self._cause, BaseException):
            parts.append(f"Caused by: {self._cause}")
        return " | ".join(parts)

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(kind={self.kind.value!r}, "
            f"status_code={self._status_code!r}, message={self._message!r})"
        )


class NetworkError(NormalizedError):
    """Request sent, no response received."""

    kind = ErrorKind.NETWORK
    default_code = "NETWORK_ERROR"
    default_retryable = True


class RequestSetupError(NormalizedError):
    """Request failed before it was sent."""

    kind = ErrorKind.REQUEST_SETUP
    default_code = "REQUEST_ERROR"
    default_retryable = True


class HttpStatusError(NormalizedError):
    """Server responded with an error status code."""

    kind = ErrorKind.HTTP_STATUS

    def __init__(self, message: str, *, status_code: int | None = None, **kwargs: Any):
        if status_code is None:
            raise ValueError("HttpStatusError requires a status_code")
        if not kwargs.get("code"):
            kwargs["code"] = f"HTTP_{status_code}"
        if kwargs.get("retryable") is None:
            kwargs["retryable"] = is_retryable_status(status_code)
        super().__init__(message, status_code=status_code, **kwargs)


class UnknownError(NormalizedError):
    """Failure that fits no other kind."""

    kind = ErrorKind.UNKNOWN


__all__ = [
    "RETRYABLE_STATUSES",
    "is_retryable_status",
    "TransportError",
    "ResponseError",
    "RequestSetupFault",
    "ConfigurationError",
    "NormalizedError",
    "NetworkError",
    "RequestSetupError",
    "HttpStatusError",
    "UnknownError",
]
