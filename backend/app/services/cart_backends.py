"""
Storage strategies behind the cart service.

``GuestCartBackend`` keeps an anonymous cart in device storage,
``AuthenticatedCartBackend`` keeps a signed-in user's cart in the cart
store. Both expose the same operations; each mutation either completes
and updates ``lines`` or raises and leaves ``lines`` as it was. The one
exception is ``CartRefreshError``: the write stuck but ``lines`` is stale.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import List, Optional, Tuple

from pydantic import TypeAdapter, ValidationError

from app.core.exceptions import CartRefreshError, MalformedLocalDataError, TransientStoreError
from app.models.cart import GUEST_OWNER_ID, CartLine, CartMode
from app.models.product import Product
from app.services.ports import CartStore, LocalDurableStore
from app.utils.helpers import get_current_timestamp

logger = logging.getLogger(__name__)

_cart_lines = TypeAdapter(List[CartLine])


def encode_guest_cart(lines: List[CartLine]) -> bytes:
    """Serialize guest lines, product snapshots included, to JSON bytes."""
    return _cart_lines.dump_json(lines, by_alias=True)


def decode_guest_cart(raw: bytes) -> List[CartLine]:
    """Parse bytes written by ``encode_guest_cart``."""
    try:
        lines = _cart_lines.validate_json(raw)
    except (ValidationError, ValueError) as e:
        raise MalformedLocalDataError(str(e)) from e

    product_ids = [line.product_id for line in lines]
    if len(product_ids) != len(set(product_ids)):
        raise MalformedLocalDataError("duplicate product lines")
    return lines


class CartBackend(ABC):
    """One way of storing the lines of the current owner."""

    mode: CartMode

    def __init__(self):
        self.lines: List[CartLine] = []

    @property
    @abstractmethod
    def owner_id(self) -> str:
        pass

    def find(self, product_id: str) -> Optional[CartLine]:
        return next((line for line in self.lines if line.product_id == product_id), None)

    @abstractmethod
    async def load(self):
        """Replace ``lines`` with the persisted cart."""

    @abstractmethod
    async def add(self, product: Product, quantity: int):
        """Add ``quantity`` of ``product`` on top of any existing line."""

    @abstractmethod
    async def remove(self, product_id: str):
        """Drop the line for ``product_id`` if present."""

    @abstractmethod
    async def set_quantity(self, product_id: str, quantity: int):
        """Set the quantity of an existing line (``quantity`` >= 1)."""

    @abstractmethod
    async def clear(self):
        """Remove every line of the owner."""


class GuestCartBackend(CartBackend):
    """
    Anonymous cart persisted as a single device-storage entry.

    All state is in-process, so mutations are serialized on ``lock`` to
    keep interleaved read-modify-write sequences from losing updates.
    """

    mode = CartMode.GUEST

    def __init__(self, device_store: LocalDurableStore, storage_key: str):
        super().__init__()
        self.device_store = device_store
        self.storage_key = storage_key
        self.lock = asyncio.Lock()

    @property
    def owner_id(self) -> str:
        return GUEST_OWNER_ID

    async def load(self):
        async with self.lock:
            self.lines = await self.read_stored()

    async def read_stored(self) -> List[CartLine]:
        """
        Read the stored guest cart; absent or corrupt data reads as empty.

        Callers that go on to act on the result hold ``lock``.
        """
        raw = await self.device_store.get(self.storage_key)
        if not raw:
            return []

        try:
            return decode_guest_cart(raw)
        except MalformedLocalDataError as e:
            logger.warning(f"Discarding unreadable guest cart: {e}")
            return []

    async def erase(self):
        """Forget the stored guest cart. Callers hold ``lock``."""
        await self.device_store.remove(self.storage_key)
        self.lines = []

    async def add(self, product: Product, quantity: int):
        async with self.lock:
            now = get_current_timestamp()
            lines = list(self.lines)
            existing = self.find(product.id)

            if existing:
                lines[lines.index(existing)] = existing.model_copy(
                    update={"quantity": existing.quantity + quantity, "updated_at": now}
                )
            else:
                lines.append(CartLine(
                    user_id=GUEST_OWNER_ID,
                    product_id=product.id,
                    quantity=quantity,
                    created_at=now,
                    updated_at=now,
                    product=product
                ))

            await self._commit(lines)

    async def remove(self, product_id: str):
        async with self.lock:
            await self._commit([line for line in self.lines if line.product_id != product_id])

    async def set_quantity(self, product_id: str, quantity: int):
        async with self.lock:
            now = get_current_timestamp()
            lines = [
                line.model_copy(update={"quantity": quantity, "updated_at": now})
                if line.product_id == product_id else line
                for line in self.lines
            ]
            await self._commit(lines)

    async def clear(self):
        async with self.lock:
            await self.erase()

    async def _commit(self, lines: List[CartLine]):
        await self.device_store.set(self.storage_key, encode_guest_cart(lines))
        self.lines = lines


class AuthenticatedCartBackend(CartBackend):
    """
    Signed-in cart held by the cart store.

    Every write is followed by a full re-fetch, so ``lines`` mirrors what
    the store holds rather than a local guess. When only the re-fetch fails,
    ``CartRefreshError`` is raised and ``lines`` is left stale.
    """

    mode = CartMode.AUTHENTICATED

    def __init__(self, cart_store: CartStore, user_id: str):
        super().__init__()
        self.cart_store = cart_store
        self.user_id = user_id

    @property
    def owner_id(self) -> str:
        return self.user_id

    async def load(self):
        self.lines = await self.cart_store.fetch_by_owner(self.user_id)

    async def add(self, product: Product, quantity: int):
        await self.cart_store.increment(self.user_id, product.id, quantity)
        await self._refresh()

    async def remove(self, product_id: str):
        await self.cart_store.delete_line(self.user_id, product_id)
        await self._refresh()

    async def set_quantity(self, product_id: str, quantity: int):
        await self.cart_store.update_quantity(self.user_id, product_id, quantity)
        await self._refresh()

    async def clear(self):
        await self.cart_store.delete_all_by_owner(self.user_id)
        self.lines = []

    async def _refresh(self):
        # The write is already committed at this point
        try:
            await self.load()
        except TransientStoreError as e:
            raise CartRefreshError("refresh cart", e.cause or e) from e

    async def absorb(self, guest_lines: List[CartLine], policy: str) -> Tuple[int, int]:
        """
        Write guest lines into this user's cart.

        With policy ``overwrite`` a guest quantity replaces the stored one,
        with ``sum`` it is added to it. Lines without a product snapshot are
        skipped. A failed line is logged and skipped; nothing is rolled back.
        Returns ``(merged, failed)``.
        """
        write = self.cart_store.increment if policy == "sum" else self.cart_store.upsert
        merged = failed = 0

        for line in guest_lines:
            if line.product is None:
                continue
            try:
                await write(self.user_id, line.product_id, line.quantity)
                merged += 1
            except TransientStoreError as e:
                failed += 1
                logger.error(f"Error merging guest line {line.product_id} for {self.user_id}: {e}")

        return merged, failed
