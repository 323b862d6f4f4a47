"""
Registry of per-device cart sessions.

Each device id gets its own identity source and cart service, created and
initialized on first use. Sessions idle for longer than ``idle_timeout``
and the least recently used ones beyond ``max_sessions`` are disposed
when a new session opens; the rest are disposed at shutdown.
"""
import asyncio
import logging
import time
from typing import Callable, Dict, List, Optional
from pydantic import BaseModel, ConfigDict

from app.core.config import settings
from app.services.cart_service import CartService
from app.services.identity import SessionIdentitySource
from app.services.ports import CartStore, LocalDurableStore

logger = logging.getLogger(__name__)


class CartSession(BaseModel):
    """Identity and cart belonging to one device."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    device_id: str
    identity: SessionIdentitySource
    cart: CartService
    last_access: float = 0.0


class CartSessionRegistry:
    """Creates and tracks one ``CartSession`` per device id."""

    def __init__(
        self,
        cart_store_factory: Callable[[], CartStore],
        device_store_factory: Callable[[str], LocalDurableStore],
        max_sessions: Optional[int] = None,
        idle_timeout: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        self.cart_store_factory = cart_store_factory
        self.device_store_factory = device_store_factory
        self.max_sessions = max_sessions or settings.CART_SESSION_LIMIT
        self.idle_timeout = idle_timeout or settings.CART_SESSION_IDLE_SECONDS
        self.clock = clock
        self._sessions: Dict[str, CartSession] = {}
        # Only callers opening the same device wait on each other
        self._opening: Dict[str, asyncio.Lock] = {}

    async def get(self, device_id: str) -> CartSession:
        """Return the device's session, creating and initializing it if new."""
        session = self._sessions.get(device_id)
        if session is None:
            lock = self._opening.setdefault(device_id, asyncio.Lock())
            try:
                async with lock:
                    session = self._sessions.get(device_id)
                    if session is None:
                        session = await self._open(device_id)
            finally:
                if self._opening.get(device_id) is lock:
                    del self._opening[device_id]

        session.last_access = self.clock()
        return session

    def __len__(self) -> int:
        return len(self._sessions)

    async def close(self, device_id: str):
        session = self._sessions.pop(device_id, None)
        if session:
            session.cart.dispose()

    async def close_all(self):
        sessions, self._sessions = list(self._sessions.values()), {}
        for session in sessions:
            session.cart.dispose()
        logger.info(f"Closed {len(sessions)} cart sessions")

    async def _open(self, device_id: str) -> CartSession:
        identity = SessionIdentitySource()
        cart = CartService(
            identity=identity,
            cart_store=self.cart_store_factory(),
            device_store=self.device_store_factory(device_id)
        )
        await cart.initialize()

        session = CartSession(
            device_id=device_id,
            identity=identity,
            cart=cart,
            last_access=self.clock()
        )
        self._sessions[device_id] = session
        logger.info(f"Opened cart session for device {device_id}")
        self._evict(keep=device_id)
        return session

    def _evict(self, keep: str):
        """Dispose idle sessions, then the least recently used over the limit."""
        now = self.clock()
        evicted: List[str] = [
            device_id for device_id, session in self._sessions.items()
            if device_id != keep and now - session.last_access > self.idle_timeout
        ]

        overflow = len(self._sessions) - len(evicted) - self.max_sessions
        if overflow > 0:
            remaining = sorted(
                (d for d in self._sessions if d != keep and d not in evicted),
                key=lambda d: self._sessions[d].last_access
            )
            evicted.extend(remaining[:overflow])

        for device_id in evicted:
            self._sessions.pop(device_id).cart.dispose()

        if evicted:
            logger.info(f"Evicted {len(evicted)} cart sessions; {len(self._sessions)} open")
