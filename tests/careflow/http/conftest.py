"""Shared fixtures for HTTP pipeline tests."""

import asyncio

import pytest

from careflow.auth.credentials import Credential, InMemoryCredentialStore
from careflow.config import ClientConfig
from careflow.errors.exceptions import ResponseError
from careflow.http.models import ApiResponse
from careflow.logging.context import get_log_context
from careflow.resilience.retry import RetryPolicy


class FakeTransport:
    """
    In-process transport driven by a handler function.

    The handler receives the ApiRequest and returns an ApiResponse, a
    (status, body) tuple, or raises. Every request is recorded along with the
    request_id that was active when it was sent.
    """

    def __init__(self, handler=None):
        self.handler = handler or (lambda request: (200, {"status": "success", "data": None}))
        self.requests = []
        self.request_ids = []
        self.cookie_jar = None
        self.closed = False

    async def send(self, request):
        self.requests.append(request)
        self.request_ids.append(get_log_context()["request_id"])
        # Yield so concurrent callers interleave like real I/O
        await asyncio.sleep(0)
        result = self.handler(request)
        if asyncio.iscoroutine(result):
            result = await result
        if isinstance(result, ApiResponse):
            return result
        status, body = result
        if status >= 400:
            raise ResponseError(status, body, {}, request)
        return ApiResponse(status=status, headers={}, body=body, request=request)

    async def close(self):
        self.closed = True

    def sent_to(self, url):
        return [r for r in self.requests if r.url == url]


@pytest.fixture
def fake_transport():
    return FakeTransport()


@pytest.fixture
def store():
    return InMemoryCredentialStore(Credential("expired", {"id": "u1", "role": "doctor"}))


@pytest.fixture
def config():
    return ClientConfig(
        base_url="http://api.test/api/v1",
        retry=RetryPolicy(max_retries=3, base_delay=0, max_delay=0),
    )
