"""
Core types and protocols used across modules.

This module provides the enums and protocol definitions shared by the error,
auth and http layers so that none of them depends on another's internals.
"""

from collections.abc import Mapping
from enum import Enum
from typing import Any, Protocol


class ErrorKind(Enum):
    """
    Classification of raw failures after normalization.

    Categories:
        NETWORK: The request was sent but no response came back
                 (connection refused/reset, DNS failure, timeout)
        REQUEST_SETUP: The request could not be built or sent
                       (invalid URL, unserializable body, interceptor failure)
        HTTP_STATUS: The server responded with an error status code
        UNKNOWN: Anything not classifiable as one of the above
    """

    NETWORK = "network"
    REQUEST_SETUP = "request_setup"
    HTTP_STATUS = "http_status"
    UNKNOWN = "unknown"


class CredentialStore(Protocol):
    """
    Protocol for the process-wide credential store.

    The store exclusively owns the current access token and the user record it
    is bound to. Implementations must be safe to call from the event loop
    thread without awaiting.
    """

    def get_credential(self) -> str | None:
        """Return the current access token, or None when logged out."""
        ...

    def set_credential(self, credential: Any) -> None:
        """Replace the stored credential (a careflow.auth.Credential)."""
        ...

    def clear_credential(self) -> None:
        """Drop the stored credential and user (logged-out state)."""
        ...

    def is_authenticated(self) -> bool:
        """True if an access token is currently stored."""
        ...

    def get_user(self) -> Mapping[str, Any] | None:
        """Return the user record bound to the stored credential."""
        ...


__all__ = [
    "CredentialStore",
    "ErrorKind",
]
