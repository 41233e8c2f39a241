"""
Request interceptors.

A request interceptor takes an ApiRequest and returns the request to send
(sync or async). Interceptors run in order before every send, replays
included. They must not mutate the request; ApiRequest is frozen anyway.
"""

from collections.abc import Awaitable, Callable, Mapping

from careflow.http.csrf import CsrfTokenSource
from careflow.http.models import ApiRequest
from careflow.types import CredentialStore

RequestInterceptor = Callable[[ApiRequest], ApiRequest | Awaitable[ApiRequest]]

AUTHORIZATION_HEADER = "Authorization"
CSRF_HEADER = "X-CSRF-Token"


def _has_header(headers: Mapping[str, str], name: str) -> bool:
    lowered = name.lower()
    return any(key.lower() == lowered for key in headers)


class AuthorizationInterceptor:
    """
    Attach ``Authorization: Bearer <token>`` from the credential store.

    A request that already carries an Authorization header keeps it; this is
    how a replay pins the freshly refreshed token.
    """

    def __init__(self, store: CredentialStore):
        self.store = store

    def __call__(self, request: ApiRequest) -> ApiRequest:
        if _has_header(request.headers, AUTHORIZATION_HEADER):
            return request
        token = self.store.get_credential()
        if not token:
            return request
        return request.with_header(AUTHORIZATION_HEADER, f"Bearer {token}")


class CsrfInterceptor:
    """Attach the CSRF token to state-mutating requests when one is known."""

    def __init__(self, source: CsrfTokenSource, header_name: str = CSRF_HEADER):
        self.source = source
        self.header_name = header_name

    def __call__(self, request: ApiRequest) -> ApiRequest:
        if request.is_safe:
            return request
        token = self.source()
        if not token:
            return request
        return request.with_header(self.header_name, token)


__all__ = [
    "RequestInterceptor",
    "AUTHORIZATION_HEADER",
    "CSRF_HEADER",
    "AuthorizationInterceptor",
    "CsrfInterceptor",
]
