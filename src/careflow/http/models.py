"""Request and response models for the HTTP pipeline."""

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any

# Methods that never change server state
SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})

# Methods that may be repeated without changing the outcome
IDEMPOTENT_METHODS = SAFE_METHODS | {"PUT", "DELETE"}


def _freeze(mapping: Mapping[str, Any] | None) -> Mapping[str, Any]:
    return MappingProxyType(dict(mapping or {}))


@dataclass(frozen=True)
class ApiRequest:
    """
    Immutable outgoing request.

    Interceptors never mutate a request; they return a new one. The retried
    flag marks a request that has already been through a refresh-and-replay
    cycle, so a second 401 is surfaced instead of looping.

    Attributes:
        method: HTTP method, upper-cased
        url: Path relative to the client base URL, or an absolute URL
        params: Query string parameters
        json: JSON-serializable request body
        headers: Request headers
        timeout: Total timeout override in seconds
        retried: True once the request has been replayed after a refresh
        allow_refresh: False for calls whose 401 means bad input, not an
            expired token (login, password reset)
    """

    method: str
    url: str
    params: Mapping[str, Any] = field(default_factory=dict)
    json: Any = None
    headers: Mapping[str, str] = field(default_factory=dict)
    timeout: float | None = None
    retried: bool = False
    allow_refresh: bool = True

    def __post_init__(self):
        object.__setattr__(self, "method", self.method.upper())
        object.__setattr__(self, "params", _freeze(self.params))
        object.__setattr__(self, "headers", _freeze(self.headers))

    @property
    def is_safe(self) -> bool:
        return self.method in SAFE_METHODS

    @property
    def is_idempotent(self) -> bool:
        return self.method in IDEMPOTENT_METHODS

    def with_header(self, name: str, value: str) -> "ApiRequest":
        """Return a copy with one header set, replacing any casing of it."""
        lowered = name.lower()
        merged = {k: v for k, v in self.headers.items() if k.lower() != lowered}
        merged[name] = value
        return replace(self, headers=merged)

    def mark_retried(self) -> "ApiRequest":
        return replace(self, retried=True)


@dataclass(frozen=True)
class ApiResponse:
    """
    Response from the API.

    The backend wraps every payload in ``{status, data, message?}``; the
    envelope accessors return None when the body is not an envelope.
    """

    status: int
    headers: Mapping[str, str]
    body: Any
    request: ApiRequest | None = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 400

    @property
    def envelope_status(self) -> str | None:
        if isinstance(self.body, Mapping):
            return self.body.get("status")
        return None

    @property
    def data(self) -> Any:
        if isinstance(self.body, Mapping):
            return self.body.get("data")
        return None

    @property
    def message(self) -> str | None:
        if isinstance(self.body, Mapping):
            return self.body.get("message")
        return None


__all__ = [
    "SAFE_METHODS",
    "IDEMPOTENT_METHODS",
    "ApiRequest",
    "ApiResponse",
]
