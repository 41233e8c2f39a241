"""
Credential stores.

The credential store is the single owner of the current access token and the
user record it is bound to. Two implementations are provided:

- InMemoryCredentialStore: process-lifetime storage
- FileCredentialStore: same behavior, persisted as JSON so a CLI session
  survives restarts

Thread Safety:
    All operations are protected by a threading.Lock. The refresh coordinator
    only calls the store from the event loop thread, but host applications may
    read it from elsewhere.
"""

import json
import logging
import os
import tempfile
import threading
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Credential:
    """
    Access token plus the identity it is bound to.

    Attributes:
        access_token: Opaque bearer token
        user: User record returned by the API (referenced, not owned)
    """

    access_token: str
    user: Mapping[str, Any] | None = None

    def __repr__(self) -> str:
        # Never render the token itself
        return f"Credential(access_token='***', user={self.user!r})"


class InMemoryCredentialStore:
    """
    Thread-safe in-memory credential store.

    Example:
        >>> store = InMemoryCredentialStore()
        >>> store.set_credential(Credential("abc123", {"id": "u1"}))
        >>> store.get_credential()
        'abc123'
        >>> store.clear_credential()
        >>> store.is_authenticated()
        False
    """

    def __init__(self, credential: Credential | None = None):
        self._credential: Credential | None = credential
        self._lock = threading.Lock()

    def get_credential(self) -> str | None:
        with self._lock:
            return self._credential.access_token if self._credential else None

    def get_user(self) -> Mapping[str, Any] | None:
        with self._lock:
            return self._credential.user if self._credential else None

    def set_credential(self, credential: Credential) -> None:
        with self._lock:
            self._credential = credential
        self._on_change(credential)

    def clear_credential(self) -> None:
        with self._lock:
            self._credential = None
        self._on_change(None)

    def is_authenticated(self) -> bool:
        with self._lock:
            return self._credential is not None

    def _on_change(self, credential: Credential | None) -> None:
        """Hook for subclasses that persist the credential."""
        pass


class FileCredentialStore(InMemoryCredentialStore):
    """
    Credential store persisted to a JSON file.

    The file holds ``{"accessToken": ..., "user": ..., "isAuthenticated": ...}``.
    Writes go to a temp file in the same directory and are moved into place,
    so a crash never leaves a half-written file behind.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        super().__init__(self._load())

    def _load(self) -> Credential | None:
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(
                "Ignoring unreadable credential file %s: %s",
                self.path,
                e,
                extra={"error_message": str(e)[:200]},
            )
            return None

        token = data.get("accessToken") if isinstance(data, dict) else None
        if not token:
            return None
        return Credential(access_token=token, user=data.get("user"))

    def _on_change(self, credential: Credential | None) -> None:
        payload = {
            "accessToken": credential.access_token if credential else None,
            "user": dict(credential.user) if credential and credential.user else None,
            "isAuthenticated": credential is not None,
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f)
            os.chmod(tmp_path, 0o600)
            os.replace(tmp_path, self.path)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise


__all__ = ["Credential", "InMemoryCredentialStore", "FileCredentialStore"]
