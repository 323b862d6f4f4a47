"""
Cart reconciliation service.

Keeps one device session's cart consistent across guest and signed-in
use, and merges the guest cart into the account cart at sign-in.
"""
import asyncio
import logging
from typing import Awaitable, Callable, List, Optional

from app.core.config import settings
from app.core.exceptions import CartRefreshError, InvalidOperationError, TransientStoreError
from app.models.cart import CartLine, CartMode, total_item_count, total_price
from app.models.product import Product
from app.schemas.cart import OperationResult
from app.services.cart_backends import AuthenticatedCartBackend, CartBackend, GuestCartBackend
from app.services.notifications import Notifier
from app.services.ports import CartStore, IdentityEvent, IdentitySource, LocalDurableStore

logger = logging.getLogger(__name__)


class CartService:
    """
    Cart of one device session.

    The active ``CartBackend`` is chosen by the latest identity signal and
    swapped atomically on sign-in and sign-out; operations never look at
    the identity themselves. Commands and identity transitions run one at
    a time on ``_lock``, so a command always lands in the backend that is
    current when it runs. Construct one per session, call
    ``initialize()`` before use and ``dispose()`` when done.
    """

    def __init__(
        self,
        identity: IdentitySource,
        cart_store: CartStore,
        device_store: LocalDurableStore,
        notifier: Optional[Notifier] = None,
        guest_cart_key: Optional[str] = None,
        merge_policy: Optional[str] = None
    ):
        self.identity = identity
        self.cart_store = cart_store
        self.device_store = device_store
        self.notifier = notifier or Notifier()
        self.guest_cart_key = guest_cart_key or settings.GUEST_CART_KEY
        self.merge_policy = merge_policy or settings.CART_MERGE_POLICY

        self._backend: CartBackend = self._guest_backend()
        self._lock = asyncio.Lock()
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._disposed = False
        self.is_loading = True
        self.is_stale = False

    # =====================================================
    # LIFECYCLE
    # =====================================================
    async def initialize(self):
        """Bind to the current session and load its cart."""
        if self._unsubscribe is not None:
            return

        self._unsubscribe = self.identity.subscribe(self._handle_identity_event)

        async with self._lock:
            user_id = await self.identity.get_current_session()
            if user_id:
                self._backend = AuthenticatedCartBackend(self.cart_store, user_id)
            else:
                self._backend = self._guest_backend()
            await self._load_current()

        logger.info(f"Cart initialized in {self.mode.value} mode with {len(self.items)} lines")

    def dispose(self):
        """Stop reacting to identity events."""
        self._disposed = True
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    # =====================================================
    # QUERY
    # =====================================================
    @property
    def mode(self) -> CartMode:
        return self._backend.mode

    @property
    def user_id(self) -> Optional[str]:
        if self.mode == CartMode.AUTHENTICATED:
            return self._backend.owner_id
        return None

    @property
    def items(self) -> List[CartLine]:
        return list(self._backend.lines)

    @property
    def total_item_count(self) -> int:
        return total_item_count(self._backend.lines)

    @property
    def total_price(self) -> float:
        return total_price(self._backend.lines)

    # =====================================================
    # COMMANDS
    # =====================================================
    async def add_item(self, product: Product, quantity: int = 1) -> OperationResult:
        """
        Add ``quantity`` of ``product``; an existing line grows by that amount.

        Raises:
            InvalidOperationError: no product or a quantity below 1, before any I/O
        """
        if product is None:
            raise InvalidOperationError("A product is required to add to cart")
        if quantity < 1:
            raise InvalidOperationError("Quantity must be at least 1")

        return await self._run(
            lambda backend: backend.add(product, quantity),
            success_message=f"{product.name} added to cart",
            error_message="Failed to add item to cart",
            log_context=f"adding {product.id} to cart"
        )

    async def remove_item(self, product_id: str) -> OperationResult:
        """Remove the line for ``product_id``; removing an absent line succeeds."""
        return await self._run(
            lambda backend: backend.remove(product_id),
            success_message="Item removed from cart",
            error_message="Failed to remove item",
            log_context=f"removing {product_id} from cart"
        )

    async def update_quantity(self, product_id: str, quantity: int) -> OperationResult:
        """Set a line's quantity; anything below 1 removes the line."""
        if quantity < 1:
            return await self.remove_item(product_id)

        return await self._run(
            lambda backend: backend.set_quantity(product_id, quantity),
            success_message=None,
            error_message="Failed to update quantity",
            log_context=f"updating quantity of {product_id}"
        )

    async def clear(self) -> OperationResult:
        """Remove every line of the current owner. Always returns a result."""
        return await self._run(
            lambda backend: backend.clear(),
            success_message="Cart cleared",
            error_message="Failed to clear cart",
            log_context="clearing cart"
        )

    async def refresh(self) -> OperationResult:
        """Re-read the cart of the current owner, e.g. after a stale result."""
        async with self._lock:
            loaded = await self._load_current()
        if not loaded:
            return OperationResult(success=False, message="Failed to load cart", stale=True)
        return OperationResult(success=True)

    # =====================================================
    # IDENTITY TRANSITIONS
    # =====================================================
    async def on_sign_in(self, user_id: str):
        """
        Merge the stored guest cart into ``user_id``'s cart and switch to it.

        Guest lines with a product snapshot are written with the configured
        merge policy. The stored guest cart is then erased, whether or not
        every line made it.
        """
        async with self._lock:
            authenticated = AuthenticatedCartBackend(self.cart_store, user_id)
            guest = self._backend if isinstance(self._backend, GuestCartBackend) else self._guest_backend()

            async with guest.lock:
                try:
                    guest_lines = await guest.read_stored()
                except TransientStoreError as e:
                    logger.error(f"Error reading guest cart for merge: {e}")
                    guest_lines = []

                if guest_lines:
                    merged, failed = await authenticated.absorb(guest_lines, self.merge_policy)
                    logger.info(
                        f"Merged {merged} guest lines into cart of {user_id} "
                        f"({failed} failed, policy {self.merge_policy})"
                    )

                try:
                    await guest.erase()
                except TransientStoreError as e:
                    logger.error(f"Error erasing guest cart: {e}")

            self._backend = authenticated
            await self._load_current()

    async def on_sign_out(self):
        """Switch to an empty guest cart; the account cart stays in the store."""
        async with self._lock:
            self._backend = self._guest_backend()
            self.is_loading = False
            self.is_stale = False
        logger.info("Cart switched to guest mode after sign-out")

    async def _handle_identity_event(self, event: IdentityEvent, user_id: Optional[str]):
        if self._disposed:
            return
        if event == IdentityEvent.SIGNED_IN and user_id:
            await self.on_sign_in(user_id)
        elif event == IdentityEvent.SIGNED_OUT:
            await self.on_sign_out()

    # =====================================================
    # HELPERS
    # =====================================================
    def _guest_backend(self) -> GuestCartBackend:
        return GuestCartBackend(self.device_store, self.guest_cart_key)

    async def _load_current(self) -> bool:
        """Load the active backend. Callers hold ``_lock``."""
        try:
            await self._backend.load()
        except TransientStoreError as e:
            logger.error(f"Error fetching cart: {e}")
            self.notifier.error("Failed to load cart")
            self.is_stale = True
            return False
        finally:
            self.is_loading = False
        self.is_stale = False
        return True

    async def _run(
        self,
        operation: Callable[[CartBackend], Awaitable[None]],
        success_message: Optional[str],
        error_message: str,
        log_context: str
    ) -> OperationResult:
        stale = False
        async with self._lock:
            try:
                await operation(self._backend)
            except CartRefreshError as e:
                # Stored already; reporting failure would invite a duplicate retry
                logger.warning(f"Cart stored but not re-read after {log_context}: {e}")
                stale = True
            except TransientStoreError as e:
                logger.error(f"Error {log_context}: {e}")
                self.notifier.error(error_message)
                return OperationResult(success=False, message=error_message)
            self.is_stale = stale

        if success_message:
            self.notifier.success(success_message)
        return OperationResult(success=True, message=success_message or "", stale=stale)
