"""
Authentication module.

Provides:
- Credential and credential stores (in-memory, JSON file)
- RefreshCoordinator: single-flight access token refresh
- SessionEvents: "session ended" signal for the host application
"""

from careflow.auth.credentials import (
    Credential,
    FileCredentialStore,
    InMemoryCredentialStore,
)
from careflow.auth.refresh import (
    PendingCaller,
    RefreshCoordinator,
    RefreshState,
)
from careflow.auth.session import SessionEvents

__all__ = [
    "Credential",
    "InMemoryCredentialStore",
    "FileCredentialStore",
    "PendingCaller",
    "RefreshState",
    "RefreshCoordinator",
    "SessionEvents",
]
