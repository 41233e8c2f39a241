"""
Authentication service.

Thin wrappers around the /auth endpoints that keep the credential store in
sync. Calls whose 401 means "wrong input" rather than "expired token" (login,
register, password reset, logout) are sent with allow_refresh=False.
"""

import logging
from collections.abc import Mapping
from typing import Any

from careflow.auth.credentials import Credential
from careflow.errors.exceptions import NormalizedError
from careflow.http import endpoints
from careflow.http.client import ApiClient
from careflow.http.models import ApiResponse
from careflow.http.schemas import parse_auth_payload
from careflow.logging.utilities import log_exception
from careflow.types import CredentialStore

logger = logging.getLogger(__name__)

MISSING_LOGIN_TOKEN_MESSAGE = "No access token received from server"


def _credential_from(response: ApiResponse) -> Credential:
    return parse_auth_payload(
        response.data, response.message or MISSING_LOGIN_TOKEN_MESSAGE
    )


class AuthService:
    """
    Login, logout and account endpoints.

    Usage:
        async with ApiClient(config) as client:
            auth = AuthService(client)
            user = await auth.login("doctor@clinic.test", "secret")
    """

    def __init__(self, client: ApiClient):
        self.client = client

    @property
    def store(self) -> CredentialStore:
        return self.client.store

    async def login(self, email: str, password: str) -> Mapping[str, Any] | None:
        """
        Sign in and store the returned credential.

        Returns:
            The user record from the response

        Raises:
            NormalizedError: Bad credentials (HTTP 401), network failure, or a
                response without an access token
        """
        response = await self.client.post(
            endpoints.AUTH_LOGIN,
            json={"email": email, "password": password},
            allow_refresh=False,
        )
        credential = _credential_from(response)
        self.store.set_credential(credential)
        logger.info("Signed in", extra={"user_id": (credential.user or {}).get("id")})
        return credential.user

    async def register(self, payload: Mapping[str, Any]) -> Mapping[str, Any] | None:
        """Create an account and sign in with the returned credential."""
        response = await self.client.post(
            endpoints.AUTH_REGISTER,
            json=dict(payload),
            allow_refresh=False,
        )
        credential = _credential_from(response)
        self.store.set_credential(credential)
        logger.info("Registered", extra={"user_id": (credential.user or {}).get("id")})
        return credential.user

    async def logout(self) -> None:
        """
        Sign out. The local credential is cleared even if the server call
        fails.
        """
        try:
            await self.client.post(endpoints.AUTH_LOGOUT, allow_refresh=False)
        except NormalizedError as e:
            log_exception(
                logger,
                e,
                "Logout request failed, clearing local session anyway",
                level=logging.WARNING,
                include_traceback=False,
            )
        finally:
            self.store.clear_credential()

    async def me(self) -> Mapping[str, Any] | None:
        """Fetch the current user and refresh the stored user record."""
        response = await self.client.get(endpoints.AUTH_ME)
        data = response.data
        user = data.get("user", data) if isinstance(data, Mapping) else None
        token = self.store.get_credential()
        if token and isinstance(user, Mapping):
            self.store.set_credential(Credential(access_token=token, user=user))
        return user

    async def request_password_reset(self, email: str) -> str | None:
        """Ask the server to send a reset link. Returns the server message."""
        response = await self.client.post(
            endpoints.AUTH_REQUEST_PASSWORD_RESET,
            json={"email": email},
            allow_refresh=False,
        )
        return response.message

    async def reset_password(self, token: str, password: str) -> str | None:
        """Set a new password using a reset token. Returns the server message."""
        response = await self.client.post(
            endpoints.AUTH_RESET_PASSWORD,
            json={"token": token, "password": password},
            allow_refresh=False,
        )
        return response.message

    async def refresh(self) -> str:
        """Force a refresh through the client's single-flight coordinator."""
        return await self.client.refresh_coordinator.ensure_fresh_credential()


__all__ = ["AuthService"]
