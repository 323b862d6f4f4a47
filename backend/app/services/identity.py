"""
In-process identity source.

One instance exists per device session. Sign-in and sign-out are asserted
by the HTTP layer; every subscribed listener is awaited in subscription
order so callers observe the cart after reconciliation has completed.
"""
import logging
from typing import Callable, List, Optional

from app.core.exceptions import InvalidOperationError
from app.services.ports import IdentityEvent, IdentityListener, IdentitySource

logger = logging.getLogger(__name__)


class SessionIdentitySource(IdentitySource):
    """Holds the identity of one device session and publishes its changes."""

    def __init__(self, user_id: Optional[str] = None):
        self._user_id = user_id
        self._listeners: List[IdentityListener] = []

    async def get_current_session(self) -> Optional[str]:
        return self._user_id

    def subscribe(self, listener: IdentityListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    async def sign_in(self, user_id: str):
        """Bind the session to ``user_id`` and notify listeners."""
        if not user_id:
            raise InvalidOperationError("A user id is required to sign in")
        self._user_id = user_id
        logger.info(f"Session signed in as {user_id}")
        await self._publish(IdentityEvent.SIGNED_IN, user_id)

    async def sign_out(self):
        """Drop the bound identity and notify listeners."""
        previous = self._user_id
        self._user_id = None
        logger.info(f"Session signed out (was {previous})")
        await self._publish(IdentityEvent.SIGNED_OUT, None)

    async def _publish(self, event: IdentityEvent, user_id: Optional[str]):
        # Copy so a listener may unsubscribe while being notified
        for listener in list(self._listeners):
            await listener(event, user_id)
