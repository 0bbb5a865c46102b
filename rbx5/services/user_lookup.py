"""
User Lookup Service - Debounced username to UserIdentity resolution.

Each keystroke cancels the pending lookup; a lookup fires only after the
quiet period and only for trimmed input of at least the minimum length.
Every dispatched lookup is tagged with a monotonic request id so the reducer
can drop responses that were overtaken by a newer one.
"""

from collections.abc import Callable

from structlog import get_logger

from rbx5.config import settings
from rbx5.exceptions import StorefrontError
from rbx5.services.checkout_state import (
    Event,
    LookupCleared,
    LookupDispatched,
    LookupFailed,
    LookupSucceeded,
    UsernameChanged,
)
from rbx5.services.debounce import DebouncedCall, DebounceState
from rbx5.services.storefront_client import StorefrontClient

logger = get_logger(__name__)


class UserLookupService:
    """Resolves typed usernames, dispatching lookup events."""

    def __init__(
        self,
        client: StorefrontClient,
        dispatch: Callable[[Event], None],
        debounce_seconds: float | None = None,
        min_length: int | None = None,
    ):
        self.client = client
        self.dispatch = dispatch
        self.debounce_seconds = (
            settings.lookup_debounce_seconds if debounce_seconds is None else debounce_seconds
        )
        self.min_length = settings.min_username_length if min_length is None else min_length
        self.debouncer = DebouncedCall("user_lookup")
        self._last_request_id = 0

    def on_input(self, raw: str) -> None:
        """Handle a change of the username input."""
        self.dispatch(UsernameChanged(raw))

        username = raw.strip()
        if len(username) < self.min_length:
            self.debouncer.cancel()
            self.dispatch(LookupCleared())
            return

        self.debouncer.schedule(self.debounce_seconds, self.lookup, username)

    async def lookup(self, username: str) -> None:
        """Resolve username now. Outcome is dispatched, never raised."""
        self._last_request_id += 1
        request_id = self._last_request_id
        self.dispatch(LookupDispatched(request_id))

        try:
            identity = await self.client.get_user_info(username)
        except StorefrontError as e:
            logger.info(
                "user_lookup_failed",
                username=username,
                request_id=request_id,
                error_type=type(e).__name__,
                error=e.message,
            )
            self.dispatch(LookupFailed(request_id, e))
            return

        logger.info(
            "user_lookup_succeeded",
            username=username,
            user_id=identity.id,
            request_id=request_id,
        )
        self.dispatch(LookupSucceeded(request_id, identity))

    @property
    def is_pending(self) -> bool:
        """True while a lookup is waiting out the debounce or running."""
        return self.debouncer.state is not DebounceState.IDLE

    def cancel(self) -> None:
        self.debouncer.cancel()
