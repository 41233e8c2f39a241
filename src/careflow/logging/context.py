"""Context variables for structured logging."""

import contextlib
from collections.abc import Iterator
from contextvars import ContextVar
from typing import Dict, Optional

_request_id: ContextVar[str] = ContextVar("request_id", default="")
_user_id: ContextVar[str] = ContextVar("user_id", default="")


def get_log_context() -> Dict[str, str]:
    return {
        "request_id": _request_id.get(),
        "user_id": _user_id.get(),
    }


def clear_log_context() -> None:
    _request_id.set("")
    _user_id.set("")


@contextlib.contextmanager
def log_context(
    request_id: Optional[str] = None,
    user_id: Optional[str] = None,
) -> Iterator[None]:
    """
    Set context fields for the duration of a block, restoring them after.

    Each asyncio task has its own copy, so concurrent requests do not see
    each other's IDs.
    """
    tokens = []
    if request_id is not None:
        tokens.append((_request_id, _request_id.set(request_id)))
    if user_id is not None:
        tokens.append((_user_id, _user_id.set(user_id)))
    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)
