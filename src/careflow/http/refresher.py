"""Network call to the refresh endpoint."""

import asyncio
import logging

from careflow.auth.credentials import Credential
from careflow.errors.exceptions import UnknownError
from careflow.http.endpoints import AUTH_REFRESH
from careflow.http.models import ApiRequest
from careflow.http.schemas import parse_auth_payload
from careflow.http.transport import DEFAULT_TIMEOUT_SECONDS, Transport

logger = logging.getLogger(__name__)

MISSING_TOKEN_MESSAGE = "No access token received from refresh endpoint"


class TokenRefresher:
    """
    Calls ``POST /auth/refresh`` through the bare transport.

    No interceptors run on this call: the refresh secret travels in an
    HTTP-only cookie, and a 401 here must not trigger another refresh.

    Response envelope:
        {"status": "success", "data": {"accessToken": "...", "user": {...}?}}
    A success without data.accessToken, or an "error" status, is a failure.
    """

    def __init__(
        self,
        transport: Transport,
        refresh_path: str = AUTH_REFRESH,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        self.transport = transport
        self.refresh_path = refresh_path
        self.timeout_seconds = float(timeout_seconds)

    async def refresh(self) -> Credential:
        """
        Perform one refresh round trip.

        Returns:
            Credential with the new access token (user only if the server sent one)

        Raises:
            ResponseError / aiohttp errors / TimeoutError: transport failures
            UnknownError: The response carried no access token
        """
        request = ApiRequest(
            "POST",
            self.refresh_path,
            timeout=self.timeout_seconds,
            allow_refresh=False,
        )
        response = await asyncio.wait_for(
            self.transport.send(request), timeout=self.timeout_seconds
        )

        if response.envelope_status == "error":
            raise UnknownError(response.message or MISSING_TOKEN_MESSAGE)

        return parse_auth_payload(response.data, MISSING_TOKEN_MESSAGE)


__all__ = ["TokenRefresher", "MISSING_TOKEN_MESSAGE"]
