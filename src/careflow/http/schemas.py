"""
Auth payload schemas.

Pydantic models for the ``data`` part of the response envelope returned by
login, register and refresh.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from careflow.auth.credentials import Credential
from careflow.errors.exceptions import UnknownError


class AuthPayload(BaseModel):
    """Access token and optional user record.

    Example:
        >>> payload = AuthPayload.model_validate(
        ...     {"accessToken": "abc123", "user": {"id": "u1"}}
        ... )
        >>> payload.access_token
        'abc123'
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    access_token: str = Field(..., alias="accessToken", min_length=1)
    user: dict[str, Any] | None = Field(
        default=None, description="User record bound to the token"
    )

    @field_validator("access_token")
    @classmethod
    def validate_token(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("accessToken cannot be blank")
        return v.strip()

    @field_validator("user", mode="before")
    @classmethod
    def drop_non_mapping_user(cls, v: Any) -> Any:
        # Some endpoints answer with only the token
        return v if isinstance(v, dict) else None

    def to_credential(self) -> Credential:
        return Credential(access_token=self.access_token, user=self.user)


def parse_auth_payload(data: Any, missing_message: str) -> Credential:
    """
    Validate an envelope ``data`` value into a Credential.

    Raises:
        UnknownError: data carries no usable access token
    """
    try:
        return AuthPayload.model_validate(data).to_credential()
    except ValidationError as e:
        raise UnknownError(missing_message, cause=e) from e


__all__ = ["AuthPayload", "parse_auth_payload"]
