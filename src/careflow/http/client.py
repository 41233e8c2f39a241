"""
Authenticated API client: the interceptor pipeline.

Request path:
    request interceptors (Authorization, X-CSRF-Token, custom) -> transport

Response path:
    2xx/3xx            returned unchanged
    401, not retried   refresh coordinator -> replay once with the new token
    401, retried       normalized and raised
    anything else      normalized and raised, optionally retried for
                       idempotent methods

One RefreshCoordinator is created per client and shared by every request
the client sends, which is what keeps refresh single-flight.
"""

import dataclasses
import inspect
import logging
import time
import uuid
from collections.abc import Callable, Iterable, Mapping
from typing import Any

import aiohttp

from careflow.auth.credentials import FileCredentialStore, InMemoryCredentialStore
from careflow.auth.refresh import RefreshCoordinator
from careflow.auth.session import SessionEndedListener, SessionEvents
from careflow.config import ClientConfig
from careflow.errors.exceptions import (
    NormalizedError,
    RequestSetupFault,
    ResponseError,
)
from careflow.errors.normalizer import normalize
from careflow.http.csrf import (
    ChainedCsrfTokenSource,
    CookieCsrfTokenSource,
    CsrfTokenSource,
    StaticCsrfTokenSource,
)
from careflow.http.interceptors import (
    AUTHORIZATION_HEADER,
    AuthorizationInterceptor,
    CsrfInterceptor,
    RequestInterceptor,
)
from careflow.http.models import ApiRequest, ApiResponse
from careflow.http.refresher import TokenRefresher
from careflow.http.transport import AiohttpTransport, Transport
from careflow.logging.context import get_log_context, log_context
from careflow.logging.utilities import log_with_context
from careflow.resilience.retry import RetryPolicy, retry_async
from careflow.types import CredentialStore

logger = logging.getLogger(__name__)


def _is_auth_failure(error: Exception) -> bool:
    if isinstance(error, ResponseError):
        return error.status == 401
    if isinstance(error, aiohttp.ClientResponseError):
        return error.status == 401
    return False


def _without_session_ended(policy: RetryPolicy) -> RetryPolicy:
    """Wrap a policy so errors that ended the session are never retried."""
    base_predicate = policy.predicate

    def predicate(error: NormalizedError, attempt: int) -> bool:
        if error.session_ended:
            return False
        if base_predicate is not None:
            return bool(base_predicate(error, attempt))
        return error.retryable

    return dataclasses.replace(policy, predicate=predicate)


class ApiClient:
    """
    Async API client with credential attachment, single-flight refresh and
    optional retries.

    Usage:
        async with ApiClient(load_config()) as client:
            client.on_session_ended(lambda error: show_login())
            response = await client.get("/patients", params={"page": 1})
            patients = response.data
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        store: CredentialStore | None = None,
        transport: Transport | None = None,
        csrf_source: CsrfTokenSource | None = None,
        interceptors: Iterable[RequestInterceptor] = (),
        retry_policy: RetryPolicy | None = None,
        session_events: SessionEvents | None = None,
    ):
        """
        Args:
            config: Client configuration (defaults to ClientConfig())
            store: Credential store; a FileCredentialStore is used when the
                config names a credential file, else an in-memory store
            transport: Transport to send through (defaults to aiohttp)
            csrf_source: CSRF token source; defaults to the configured static
                token, then the CSRF cookie
            interceptors: Extra request interceptors, run after the defaults
            retry_policy: Retry policy applied to idempotent requests when a
                call does not choose one; None disables default retries
            session_events: Registry for the session-ended signal
        """
        self.config = config or ClientConfig()
        if store is None:
            credential_path = self.config.credential_path
            store = (
                FileCredentialStore(credential_path)
                if credential_path
                else InMemoryCredentialStore()
            )
        self.store = store

        self.transport = transport or AiohttpTransport(
            self.config.base_url,
            timeout_seconds=self.config.timeout_seconds,
            unsafe_cookies=self.config.unsafe_cookies,
        )
        self.session_events = session_events or SessionEvents()

        self.refresher = TokenRefresher(
            self.transport,
            refresh_path=self.config.refresh_path,
            timeout_seconds=self.config.timeout_seconds,
        )
        self.refresh_coordinator = RefreshCoordinator(
            self.refresher.refresh, self.store, self.session_events
        )

        if csrf_source is None:
            csrf_source = ChainedCsrfTokenSource(
                StaticCsrfTokenSource(self.config.csrf_token),
                CookieCsrfTokenSource(
                    lambda: getattr(self.transport, "cookie_jar", None),
                    self.config.csrf_cookie,
                ),
            )

        self.request_interceptors: list[RequestInterceptor] = [
            AuthorizationInterceptor(self.store),
            CsrfInterceptor(csrf_source, self.config.csrf_header),
            *interceptors,
        ]
        self.retry_policy = retry_policy

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def close(self) -> None:
        await self.transport.close()

    def on_session_ended(self, listener: SessionEndedListener) -> Callable[[], None]:
        """Subscribe to the session-ended signal. Returns an unsubscribe function."""
        return self.session_events.subscribe(listener)

    def is_authenticated(self) -> bool:
        return self.store.is_authenticated()

    # ------------------------------------------------------------------
    # Public request API
    # ------------------------------------------------------------------

    async def request(
        self,
        method: str,
        url: str,
        *,
        params: Mapping[str, Any] | None = None,
        json: Any = None,
        headers: Mapping[str, str] | None = None,
        timeout: float | None = None,
        retry: RetryPolicy | bool | None = None,
        allow_refresh: bool = True,
    ) -> ApiResponse:
        """
        Build and send a request.

        Args:
            method: HTTP method
            url: Path relative to the base URL, or an absolute URL
            params: Query string parameters
            json: JSON body
            headers: Extra headers
            timeout: Total timeout override in seconds
            retry: RetryPolicy to use, True for the configured policy, False
                to disable, None for the client default
            allow_refresh: Whether a 401 may trigger a token refresh

        Raises:
            NormalizedError: Any failure not resolved by refresh-and-replay
        """
        try:
            api_request = ApiRequest(
                method=method,
                url=url,
                params=params or {},
                json=json,
                headers=headers or {},
                timeout=timeout,
                allow_refresh=allow_refresh,
            )
        except (TypeError, ValueError, AttributeError) as e:
            raise normalize(
                RequestSetupFault(f"Invalid request: {e}", cause=e)
            ) from e
        return await self.send(api_request, retry=retry)

    async def send(
        self,
        request: ApiRequest,
        *,
        retry: RetryPolicy | bool | None = None,
    ) -> ApiResponse:
        """Send a prepared ApiRequest through the pipeline."""
        request_id = get_log_context()["request_id"] or uuid.uuid4().hex[:12]
        with log_context(request_id=request_id):
            policy = self._resolve_retry(request, retry)
            if policy is None:
                return await self._dispatch(request)
            return await retry_async(
                lambda: self._dispatch(request),
                policy,
                operation_name=f"{request.method} {request.url}",
            )

    async def get(self, url: str, **kwargs: Any) -> ApiResponse:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs: Any) -> ApiResponse:
        return await self.request("POST", url, **kwargs)

    async def put(self, url: str, **kwargs: Any) -> ApiResponse:
        return await self.request("PUT", url, **kwargs)

    async def patch(self, url: str, **kwargs: Any) -> ApiResponse:
        return await self.request("PATCH", url, **kwargs)

    async def delete(self, url: str, **kwargs: Any) -> ApiResponse:
        return await self.request("DELETE", url, **kwargs)

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def _resolve_retry(
        self, request: ApiRequest, retry: RetryPolicy | bool | None
    ) -> RetryPolicy | None:
        if retry is None:
            policy = self.retry_policy
        elif retry is True:
            policy = self.config.retry
        elif retry is False:
            policy = None
        else:
            policy = retry

        if policy is None:
            return None
        if not request.is_idempotent:
            logger.debug(
                "Not retrying non-idempotent %s %s",
                request.method,
                request.url,
                extra={"http_method": request.method, "http_url": request.url},
            )
            return None
        return _without_session_ended(policy)

    async def _prepare(self, request: ApiRequest) -> ApiRequest:
        """Run request interceptors. Failures are raised as RequestSetupError."""
        try:
            for interceptor in self.request_interceptors:
                result = interceptor(request)
                if inspect.isawaitable(result):
                    result = await result
                request = result
        except NormalizedError:
            raise
        except Exception as e:
            raise normalize(
                RequestSetupFault(
                    f"Request interceptor failed: {e}", request=request, cause=e
                )
            ) from e
        return request

    async def _dispatch(self, request: ApiRequest) -> ApiResponse:
        prepared = await self._prepare(request)
        started = time.perf_counter()
        try:
            return await self.transport.send(prepared)
        except Exception as e:
            if _is_auth_failure(e) and request.allow_refresh and not request.retried:
                return await self._refresh_and_replay(request)

            error = normalize(e)
            log_with_context(
                logger,
                logging.WARNING,
                f"{prepared.method} {prepared.url} failed: {error.message[:200]}",
                http_method=prepared.method,
                http_url=prepared.url,
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
                **error.to_dict(),
            )
            if error is e:
                raise
            raise error from e

    async def _refresh_and_replay(self, request: ApiRequest) -> ApiResponse:
        retried = request.mark_retried()
        logger.info(
            "Access token rejected for %s %s, refreshing",
            request.method,
            request.url,
            extra={"http_method": request.method, "http_url": request.url},
        )

        token = await self.refresh_coordinator.ensure_fresh_credential(retried)

        replay = retried.with_header(AUTHORIZATION_HEADER, f"Bearer {token}")
        return await self._dispatch(replay)


__all__ = ["ApiClient"]
