"""
CSRF token discovery.

A CSRF token source is any zero-argument callable returning the current token
or None. Sources can be chained; the first one yielding a token wins.
"""

from collections.abc import Callable

from aiohttp.abc import AbstractCookieJar

from careflow.http.transport import get_cookie

CsrfTokenSource = Callable[[], str | None]

DEFAULT_CSRF_COOKIE = "csrf-token"


class StaticCsrfTokenSource:
    """Token handed over by the host (e.g. read from a page meta tag)."""

    def __init__(self, token: str | None = None):
        self.token = token

    def __call__(self) -> str | None:
        return self.token or None


class CookieCsrfTokenSource:
    """Token read from a cookie set by the backend."""

    def __init__(
        self,
        jar: Callable[[], AbstractCookieJar | None],
        cookie_name: str = DEFAULT_CSRF_COOKIE,
    ):
        """
        Args:
            jar: Returns the cookie jar to read (resolved on every call since
                the session may be created lazily)
            cookie_name: Cookie holding the token
        """
        self._jar = jar
        self.cookie_name = cookie_name

    def __call__(self) -> str | None:
        value = get_cookie(self._jar(), self.cookie_name)
        return value.strip() if value else None


class ChainedCsrfTokenSource:
    """Try each source in order."""

    def __init__(self, *sources: CsrfTokenSource):
        self.sources = sources

    def __call__(self) -> str | None:
        for source in self.sources:
            token = source()
            if token:
                return token
        return None


__all__ = [
    "CsrfTokenSource",
    "DEFAULT_CSRF_COOKIE",
    "StaticCsrfTokenSource",
    "CookieCsrfTokenSource",
    "ChainedCsrfTokenSource",
]
