"""Tests for the ApiClient interceptor pipeline."""

import asyncio
import logging
from unittest.mock import Mock

import aiohttp
import pytest

from careflow.auth.credentials import Credential, FileCredentialStore
from careflow.errors.exceptions import (
    HttpStatusError,
    NetworkError,
    NormalizedError,
    RequestSetupError,
)
from careflow.http.client import ApiClient
from careflow.http.endpoints import AUTH_REFRESH
from careflow.http.models import ApiRequest
from careflow.resilience.retry import RetryPolicy
from careflow.types import ErrorKind


def refresh_success(token="abc123", delay=0.0):
    async def respond():
        await asyncio.sleep(delay)
        return 200, {"status": "success", "data": {"accessToken": token}}

    return respond


def token_gate(refresh, valid_token="abc123"):
    """401 unless the request carries the valid token."""

    def handler(request):
        if request.url == AUTH_REFRESH:
            return refresh()
        if request.headers.get("Authorization") == f"Bearer {valid_token}":
            return 200, {"status": "success", "data": {"url": request.url}}
        return 401, {"status": "error", "message": "Token expired"}

    return handler


@pytest.fixture
def client(config, store, fake_transport):
    return ApiClient(config, store=store, transport=fake_transport)


class TestRequestInterceptors:
    @pytest.mark.asyncio
    async def test_attaches_bearer_token(self, client, store, fake_transport):
        store.set_credential(Credential("good", {"id": "u1"}))

        await client.get("/patients")

        assert fake_transport.requests[0].headers["Authorization"] == "Bearer good"

    @pytest.mark.asyncio
    async def test_no_authorization_when_logged_out(self, client, store, fake_transport):
        store.clear_credential()

        await client.get("/public")

        assert "Authorization" not in fake_transport.requests[0].headers

    @pytest.mark.asyncio
    async def test_csrf_on_post_not_get(self, config, store, fake_transport):
        config.csrf_token = "csrf-1"
        client = ApiClient(config, store=store, transport=fake_transport)

        await client.get("/patients")
        await client.post("/patients", json={"name": "Ana"})
        await client.delete("/patients/1")

        get_request, post_request, delete_request = fake_transport.requests
        assert "X-CSRF-Token" not in get_request.headers
        assert post_request.headers["X-CSRF-Token"] == "csrf-1"
        assert delete_request.headers["X-CSRF-Token"] == "csrf-1"

    @pytest.mark.asyncio
    async def test_no_csrf_header_without_token(self, client, fake_transport):
        await client.post("/patients", json={})
        assert "X-CSRF-Token" not in fake_transport.requests[0].headers

    @pytest.mark.asyncio
    async def test_custom_interceptor_sync_and_async(self, config, store, fake_transport):
        def tag(request):
            return request.with_header("X-Client", "careflow")

        async def trace(request):
            return request.with_header("X-Trace", "t-1")

        client = ApiClient(
            config, store=store, transport=fake_transport, interceptors=[tag, trace]
        )

        await client.get("/patients")

        headers = fake_transport.requests[0].headers
        assert headers["X-Client"] == "careflow"
        assert headers["X-Trace"] == "t-1"

    @pytest.mark.asyncio
    async def test_interceptor_failure_is_request_setup_error(
        self, config, store, fake_transport
    ):
        def broken(request):
            raise RuntimeError("cannot sign request")

        client = ApiClient(
            config, store=store, transport=fake_transport, interceptors=[broken]
        )

        with pytest.raises(RequestSetupError) as exc_info:
            await client.get("/patients")

        assert exc_info.value.kind == ErrorKind.REQUEST_SETUP
        assert "cannot sign request" in exc_info.value.message
        assert fake_transport.requests == []

    @pytest.mark.asyncio
    async def test_each_request_gets_a_request_id(self, client, fake_transport):
        await client.get("/a")
        await client.get("/b")

        first, second = fake_transport.request_ids
        assert first and second
        assert first != second


class TestRefreshAndReplay:
    @pytest.mark.asyncio
    async def test_concurrent_401s_share_one_refresh(self, client, store, fake_transport):
        fake_transport.handler = token_gate(refresh_success("abc123", delay=0.1))

        responses = await asyncio.gather(
            *(client.get(f"/patients/{i}") for i in range(5))
        )

        assert [r.status for r in responses] == [200] * 5
        assert len(fake_transport.sent_to(AUTH_REFRESH)) == 1
        assert client.refresh_coordinator.refresh_count == 1

        replays = [r for r in fake_transport.requests if r.retried]
        assert len(replays) == 5
        assert all(r.headers["Authorization"] == "Bearer abc123" for r in replays)
        assert store.get_credential() == "abc123"
        assert store.get_user() == {"id": "u1", "role": "doctor"}

    @pytest.mark.asyncio
    async def test_refresh_failure_rejects_all_and_ends_session(
        self, client, store, fake_transport
    ):
        def refresh_down():
            raise aiohttp.ClientConnectionError("connection refused")

        fake_transport.handler = token_gate(refresh_down)
        listener = Mock()
        client.on_session_ended(listener)

        results = await asyncio.gather(
            *(client.get(f"/patients/{i}") for i in range(5)),
            return_exceptions=True,
        )

        assert all(isinstance(r, NetworkError) for r in results)
        assert all(r.session_ended for r in results)
        assert store.get_credential() is None
        assert store.is_authenticated() is False
        assert len(fake_transport.sent_to(AUTH_REFRESH)) == 1
        listener.assert_called_once()

    @pytest.mark.asyncio
    async def test_refresh_timeout_ends_session(self, config, store, fake_transport):
        config.timeout_seconds = 0.05
        client = ApiClient(config, store=store, transport=fake_transport)
        fake_transport.handler = token_gate(refresh_success("abc123", delay=1.0))
        listener = Mock()
        client.on_session_ended(listener)

        results = await asyncio.gather(
            *(client.get(f"/patients/{i}") for i in range(5)),
            return_exceptions=True,
        )

        assert all(isinstance(r, NetworkError) for r in results)
        assert all(r.kind == ErrorKind.NETWORK for r in results)
        assert all(r.session_ended for r in results)
        assert store.is_authenticated() is False
        assert len(fake_transport.sent_to(AUTH_REFRESH)) == 1
        assert not [r for r in fake_transport.requests if r.retried]
        assert client.refresh_coordinator.is_refreshing is False
        listener.assert_called_once()

    @pytest.mark.asyncio
    async def test_second_401_after_replay_is_surfaced(self, client, fake_transport):
        def handler(request):
            if request.url == AUTH_REFRESH:
                return 200, {"status": "success", "data": {"accessToken": "abc123"}}
            return 401, {"status": "error", "message": "Forbidden resource"}

        fake_transport.handler = handler

        with pytest.raises(HttpStatusError) as exc_info:
            await client.get("/admin")

        assert exc_info.value.status_code == 401
        assert exc_info.value.message == "Forbidden resource"
        assert len(fake_transport.sent_to(AUTH_REFRESH)) == 1
        assert len(fake_transport.sent_to("/admin")) == 2

    @pytest.mark.asyncio
    async def test_refresh_without_token_ends_session(self, client, store, fake_transport):
        def handler(request):
            if request.url == AUTH_REFRESH:
                return 200, {"status": "success", "data": {}}
            return 401, None

        fake_transport.handler = handler

        with pytest.raises(NormalizedError) as exc_info:
            await client.get("/patients")

        assert exc_info.value.kind == ErrorKind.UNKNOWN
        assert exc_info.value.session_ended is True
        assert store.is_authenticated() is False

    @pytest.mark.asyncio
    async def test_allow_refresh_false_skips_refresh(self, client, fake_transport):
        fake_transport.handler = lambda request: (401, {"message": "Invalid credentials"})

        with pytest.raises(HttpStatusError) as exc_info:
            await client.post("/auth/login", json={}, allow_refresh=False)

        assert exc_info.value.message == "Invalid credentials"
        assert fake_transport.sent_to(AUTH_REFRESH) == []

    @pytest.mark.asyncio
    async def test_already_retried_request_is_not_refreshed(self, client, fake_transport):
        fake_transport.handler = lambda request: (401, None)

        with pytest.raises(HttpStatusError):
            await client.send(ApiRequest("GET", "/patients", retried=True))

        assert fake_transport.sent_to(AUTH_REFRESH) == []

    @pytest.mark.asyncio
    async def test_non_401_errors_pass_through(self, client, fake_transport):
        fake_transport.handler = lambda request: (404, {"message": "Patient not found"})

        with pytest.raises(HttpStatusError) as exc_info:
            await client.get("/patients/9")

        assert exc_info.value.status_code == 404
        assert exc_info.value.message == "Patient not found"
        assert fake_transport.sent_to(AUTH_REFRESH) == []

    @pytest.mark.asyncio
    async def test_failure_logged_with_request_fields(self, client, fake_transport, caplog):
        fake_transport.handler = lambda request: (404, {"message": "Patient not found"})

        with caplog.at_level(logging.WARNING, logger="careflow.http.client"):
            with pytest.raises(HttpStatusError):
                await client.get("/patients/9")

        record = caplog.records[-1]
        assert record.getMessage() == "GET /patients/9 failed: Patient not found"
        assert record.http_method == "GET"
        assert record.http_status == 404
        assert record.error_kind == "http_status"
        assert record.duration_ms >= 0


class TestRetry:
    @pytest.mark.asyncio
    async def test_get_retried_until_success(self, client, fake_transport):
        statuses = iter([503, 503, 503, 200])
        fake_transport.handler = lambda request: (next(statuses), {"status": "success"})

        response = await client.get("/patients", retry=True)

        assert response.status == 200
        assert len(fake_transport.requests) == 4

    @pytest.mark.asyncio
    async def test_no_retry_by_default(self, client, fake_transport):
        fake_transport.handler = lambda request: (503, None)

        with pytest.raises(HttpStatusError):
            await client.get("/patients")

        assert len(fake_transport.requests) == 1

    @pytest.mark.asyncio
    async def test_client_default_policy(self, config, store, fake_transport):
        client = ApiClient(
            config,
            store=store,
            transport=fake_transport,
            retry_policy=RetryPolicy(max_retries=1, base_delay=0, max_delay=0),
        )
        fake_transport.handler = lambda request: (502, None)

        with pytest.raises(HttpStatusError):
            await client.get("/patients")

        assert len(fake_transport.requests) == 2

    @pytest.mark.asyncio
    async def test_post_is_never_retried(self, client, fake_transport):
        fake_transport.handler = lambda request: (503, None)

        with pytest.raises(HttpStatusError):
            await client.post("/appointments", json={}, retry=True)

        assert len(fake_transport.requests) == 1

    @pytest.mark.asyncio
    async def test_not_found_not_retried(self, client, fake_transport):
        fake_transport.handler = lambda request: (404, None)

        with pytest.raises(HttpStatusError):
            await client.get("/patients/9", retry=True)

        assert len(fake_transport.requests) == 1

    @pytest.mark.asyncio
    async def test_session_ended_error_not_retried(self, client, fake_transport):
        def handler(request):
            if request.url == AUTH_REFRESH:
                raise aiohttp.ClientConnectionError("down")
            return 401, None

        fake_transport.handler = handler

        with pytest.raises(NetworkError) as exc_info:
            await client.get("/patients", retry=True)

        assert exc_info.value.session_ended is True
        assert len(fake_transport.sent_to(AUTH_REFRESH)) == 1
        assert len(fake_transport.sent_to("/patients")) == 1


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_context_manager_closes_transport(self, config, store, fake_transport):
        async with ApiClient(config, store=store, transport=fake_transport) as client:
            await client.get("/patients")

        assert fake_transport.closed is True

    @pytest.mark.asyncio
    async def test_verbs_set_method(self, client, fake_transport):
        await client.get("/x")
        await client.post("/x")
        await client.put("/x")
        await client.patch("/x")
        await client.delete("/x")

        assert [r.method for r in fake_transport.requests] == [
            "GET",
            "POST",
            "PUT",
            "PATCH",
            "DELETE",
        ]

    def test_is_authenticated_reads_store(self, client, store):
        assert client.is_authenticated() is True
        store.clear_credential()
        assert client.is_authenticated() is False

    def test_in_memory_store_by_default(self, config, fake_transport):
        client = ApiClient(config, transport=fake_transport)
        assert client.is_authenticated() is False

    def test_file_store_when_configured(self, config, fake_transport, tmp_path):
        config.credential_file = str(tmp_path / "auth.json")
        client = ApiClient(config, transport=fake_transport)

        assert isinstance(client.store, FileCredentialStore)
