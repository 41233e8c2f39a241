"""
HTTP module.

Provides:
- ApiClient: interceptor pipeline with refresh-and-replay on 401
- AuthService: login/logout/account endpoints
- AiohttpTransport: aiohttp-backed transport
- Request interceptors and CSRF token sources
"""

from careflow.http.auth_service import AuthService
from careflow.http.client import ApiClient
from careflow.http.csrf import (
    ChainedCsrfTokenSource,
    CookieCsrfTokenSource,
    StaticCsrfTokenSource,
)
from careflow.http.interceptors import AuthorizationInterceptor, CsrfInterceptor
from careflow.http.models import ApiRequest, ApiResponse
from careflow.http.refresher import TokenRefresher
from careflow.http.schemas import AuthPayload
from careflow.http.transport import AiohttpTransport, Transport, create_session

__all__ = [
    "ApiClient",
    "AuthService",
    "ApiRequest",
    "ApiResponse",
    "Transport",
    "AiohttpTransport",
    "create_session",
    "TokenRefresher",
    "AuthPayload",
    "AuthorizationInterceptor",
    "CsrfInterceptor",
    "StaticCsrfTokenSource",
    "CookieCsrfTokenSource",
    "ChainedCsrfTokenSource",
]
