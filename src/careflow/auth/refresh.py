"""
Single-flight access token refresh.

When many requests fail with 401 at once, only the first one to arrive calls
the refresh endpoint. Everyone else waits in a FIFO queue and receives the
outcome of that one call.

States:
    Idle        in_flight is False, queue is empty
    Refreshing  in_flight is True, the owning caller awaits the refresh call

The in_flight check and set in ensure_fresh_credential() happen with no await
in between, so on a single event loop no second caller can slip in. A
coordinator must therefore only be used from the loop it was first used on.
"""

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from careflow.auth.credentials import Credential
from careflow.auth.session import SessionEvents
from careflow.errors.exceptions import NormalizedError, UnknownError
from careflow.errors.normalizer import normalize
from careflow.logging.utilities import log_exception
from careflow.types import CredentialStore

logger = logging.getLogger(__name__)

RefreshFunction = Callable[[], Awaitable[Credential | str]]


@dataclass
class PendingCaller:
    """
    A request suspended until the in-flight refresh settles.

    The future resolves with the new access token, or raises the refresh
    error. The request is kept so the caller can replay it.
    """

    request: Any
    future: "asyncio.Future[str]"


@dataclass
class RefreshState:
    """Mutable refresh state. Only RefreshCoordinator touches it."""

    in_flight: bool = False
    queue: deque[PendingCaller] = field(default_factory=deque)


class RefreshCoordinator:
    """
    Ensures at most one refresh call is outstanding at any time.

    Usage:
        coordinator = RefreshCoordinator(refresher.refresh, store)
        token = await coordinator.ensure_fresh_credential(request)
        headers = {"Authorization": f"Bearer {token}"}

    On refresh failure the store is cleared, every queued caller is rejected
    with the same NormalizedError (marked session_ended), and the
    session-ended signal is emitted.
    """

    def __init__(
        self,
        refresh_fn: RefreshFunction,
        store: CredentialStore,
        session_events: SessionEvents | None = None,
    ):
        """
        Args:
            refresh_fn: Coroutine function performing the network refresh.
                Returns a Credential or a bare access token.
            store: Process-wide credential store
            session_events: Signal registry for session-ended notifications
        """
        self._refresh_fn = refresh_fn
        self._store = store
        self._state = RefreshState()
        self.session_events = session_events or SessionEvents()
        self.refresh_count = 0

    @property
    def is_refreshing(self) -> bool:
        return self._state.in_flight

    @property
    def queue_size(self) -> int:
        return len(self._state.queue)

    async def ensure_fresh_credential(self, original_request: Any = None) -> str:
        """
        Obtain a fresh access token, sharing any refresh already in flight.

        Args:
            original_request: The request that failed with 401; kept with the
                pending caller so it can be replayed

        Returns:
            The new access token

        Raises:
            NormalizedError: The refresh failure (session_ended is True)
        """
        if self._state.in_flight:
            return await self._wait_for_refresh(original_request)

        # Idle -> Refreshing. No await between the check above and this line.
        self._state.in_flight = True
        return await self._run_refresh()

    async def _wait_for_refresh(self, request: Any) -> str:
        future: asyncio.Future[str] = asyncio.get_running_loop().create_future()
        self._state.queue.append(PendingCaller(request=request, future=future))
        logger.debug(
            "Refresh in flight, queued request",
            extra={"queue_size": len(self._state.queue)},
        )
        return await future

    async def _run_refresh(self) -> str:
        self.refresh_count += 1
        logger.info(
            "Refreshing access token",
            extra={"refresh_count": self.refresh_count},
        )

        try:
            credential = self._as_credential(await self._refresh_fn())
            self._store.set_credential(credential)
        except asyncio.CancelledError:
            self._settle(error=UnknownError("Token refresh cancelled"))
            raise
        except Exception as e:
            error = normalize(e).derive(session_ended=True)
            try:
                self._clear_store()
            finally:
                waiting = self._settle(error=error)
            logger.error(
                "Token refresh failed, session ended: %s",
                error.message[:200],
                extra={
                    "queue_size": waiting,
                    "refresh_count": self.refresh_count,
                    **error.to_dict(),
                },
            )
            await self.session_events.emit_session_ended(error)
            raise error from e

        waiting = self._settle(token=credential.access_token)
        logger.info(
            "Access token refreshed",
            extra={"queue_size": waiting, "refresh_count": self.refresh_count},
        )
        return credential.access_token

    def _clear_store(self) -> None:
        # The in-memory credential is already gone when persisting fails
        try:
            self._store.clear_credential()
        except Exception as e:
            log_exception(
                logger,
                e,
                "Failed to persist cleared credential",
                level=logging.WARNING,
                include_traceback=False,
            )

    def _as_credential(self, result: Credential | str) -> Credential:
        if isinstance(result, Credential):
            if result.user is None:
                return Credential(result.access_token, self._store.get_user())
            return result
        return Credential(access_token=result, user=self._store.get_user())

    def _settle(
        self, token: str | None = None, error: NormalizedError | None = None
    ) -> int:
        """
        Refreshing -> Idle. Settle every pending caller in FIFO order.

        Returns:
            Number of callers settled
        """
        state = self._state
        settled = 0
        while state.queue:
            caller = state.queue.popleft()
            # Waiter was cancelled while queued
            if caller.future.done():
                continue
            if error is not None:
                caller.future.set_exception(error)
            else:
                caller.future.set_result(token)
            settled += 1
        state.in_flight = False
        return settled


__all__ = [
    "PendingCaller",
    "RefreshState",
    "RefreshCoordinator",
    "RefreshFunction",
]
