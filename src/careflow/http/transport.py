"""
HTTP transport using aiohttp.

The transport sends one ApiRequest and returns one ApiResponse. It knows
nothing about credentials, refresh, or retries: status codes >= 400 are
raised as ResponseError, request-building failures as RequestSetupFault, and
aiohttp/timeout errors propagate as-is for the normalizer to classify.
"""

import json
import logging
from typing import Any, Protocol

import aiohttp
from aiohttp.abc import AbstractCookieJar

from careflow.errors.exceptions import RequestSetupFault, ResponseError
from careflow.http.models import ApiRequest, ApiResponse

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_HEADERS = {"Content-Type": "application/json"}


class Transport(Protocol):
    """Anything able to send an ApiRequest."""

    async def send(self, request: ApiRequest) -> ApiResponse:
        ...

    async def close(self) -> None:
        ...


def create_session(
    timeout_total: float = DEFAULT_TIMEOUT_SECONDS,
    max_connections: int = 100,
    max_connections_per_host: int = 10,
    unsafe_cookies: bool = False,
) -> aiohttp.ClientSession:
    """
    Create aiohttp ClientSession with connection pooling, timeout and cookies.

    The cookie jar carries the HTTP-only refresh cookie set by the server, so
    one session must be shared by normal calls and the refresh call.

    Args:
        timeout_total: Total timeout per request in seconds (default: 30)
        max_connections: Total connection pool size (default: 100)
        max_connections_per_host: Per-host connection limit (default: 10)
        unsafe_cookies: Accept cookies from IP-address hosts (local dev)

    Returns:
        Configured aiohttp.ClientSession

    Note:
        Caller is responsible for session lifecycle management.
    """
    connector = aiohttp.TCPConnector(
        limit=max_connections,
        limit_per_host=max_connections_per_host,
        ttl_dns_cache=300,
    )
    return aiohttp.ClientSession(
        connector=connector,
        timeout=aiohttp.ClientTimeout(total=timeout_total),
        headers=DEFAULT_HEADERS,
        cookie_jar=aiohttp.CookieJar(unsafe=unsafe_cookies),
    )


class AiohttpTransport:
    """
    Sends requests relative to a base URL over a shared aiohttp session.

    Usage:
        transport = AiohttpTransport("http://localhost:5000/api/v1")
        try:
            response = await transport.send(ApiRequest("GET", "/auth/me"))
        finally:
            await transport.close()
    """

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        session: aiohttp.ClientSession | None = None,
        unsafe_cookies: bool = False,
    ):
        """
        Args:
            base_url: API root, e.g. http://localhost:5000/api/v1
            timeout_seconds: Total timeout per attempt, refresh included
            session: Existing session to use (caller keeps ownership)
            unsafe_cookies: Accept cookies from IP-address hosts
        """
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = float(timeout_seconds)
        self._session = session
        self._owns_session = session is None
        self._unsafe_cookies = unsafe_cookies

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = create_session(
                timeout_total=self.timeout_seconds,
                unsafe_cookies=self._unsafe_cookies,
            )
            self._owns_session = True
        return self._session

    @property
    def cookie_jar(self) -> AbstractCookieJar | None:
        if self._session is None:
            return None
        return self._session.cookie_jar

    def build_url(self, url: str) -> str:
        if url.startswith(("http://", "https://")):
            return url
        return f"{self.base_url}/{url.lstrip('/')}"

    def _build_kwargs(self, request: ApiRequest) -> dict[str, Any]:
        headers = dict(request.headers)
        kwargs: dict[str, Any] = {
            "timeout": aiohttp.ClientTimeout(
                total=request.timeout or self.timeout_seconds
            ),
        }
        if request.json is not None:
            kwargs["data"] = json.dumps(request.json)
            headers.setdefault("Content-Type", "application/json")
        if request.params:
            kwargs["params"] = {
                k: str(v).lower() if isinstance(v, bool) else v
                for k, v in request.params.items()
                if v is not None
            }
        kwargs["headers"] = headers
        return kwargs

    async def send(self, request: ApiRequest) -> ApiResponse:
        """
        Send one request.

        Raises:
            RequestSetupFault: The request could not be built
            ResponseError: Server answered with status >= 400
            aiohttp.ClientError / TimeoutError: No response received
        """
        try:
            url = self.build_url(request.url)
            kwargs = self._build_kwargs(request)
        except (TypeError, ValueError) as e:
            raise RequestSetupFault(
                f"Could not build {request.method} request: {e}",
                request=request,
                cause=e,
            ) from e

        session = self._get_session()
        async with session.request(request.method, url, **kwargs) as response:
            status = response.status
            headers = dict(response.headers)
            body = await self._read_body(response)

        logger.debug(
            "HTTP %s %s -> %d",
            request.method,
            request.url,
            status,
            extra={
                "http_method": request.method,
                "http_url": request.url,
                "http_status": status,
            },
        )

        if status >= 400:
            raise ResponseError(status, body, headers, request)

        return ApiResponse(status=status, headers=headers, body=body, request=request)

    @staticmethod
    async def _read_body(response: aiohttp.ClientResponse) -> Any:
        text = await response.text()
        if not text:
            return None
        try:
            return json.loads(text)
        except ValueError:
            return text

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()


def get_cookie(jar: AbstractCookieJar | None, name: str) -> str | None:
    """Read a cookie value from a jar, or None."""
    if jar is None:
        return None
    for morsel in jar:
        if morsel.key == name and morsel.value:
            return morsel.value
    return None


__all__ = [
    "DEFAULT_TIMEOUT_SECONDS",
    "Transport",
    "AiohttpTransport",
    "create_session",
    "get_cookie",
]
