"""Session lifecycle signals exposed to the host application."""

import inspect
import logging
from collections.abc import Callable
from typing import Any

from careflow.errors.exceptions import NormalizedError

logger = logging.getLogger(__name__)

SessionEndedListener = Callable[[NormalizedError], Any]


class SessionEvents:
    """
    Listener registry for the "session ended" signal.

    Emitted once per failed refresh, after the credential store has been
    cleared. Hosts typically navigate to their sign-in entry point. Listeners
    may be plain functions or coroutine functions.
    """

    def __init__(self) -> None:
        self._listeners: list[SessionEndedListener] = []

    def subscribe(self, listener: SessionEndedListener) -> Callable[[], None]:
        """Register a listener. Returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    async def emit_session_ended(self, error: NormalizedError) -> None:
        """Notify every listener. A failing listener does not stop the others."""
        for listener in list(self._listeners):
            try:
                result = listener(error)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.warning(
                    "Error in session-ended listener: %s",
                    str(e)[:100],
                    extra={"callback_error": str(e)[:100]},
                )


__all__ = ["SessionEvents", "SessionEndedListener"]
