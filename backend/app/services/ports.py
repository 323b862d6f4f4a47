"""
Interfaces of the collaborators the cart service depends on.

Concrete adapters live in ``app.services.stores`` (MongoDB, device storage)
and ``app.services.identity``; tests substitute in-memory fakes.
"""
from abc import ABC, abstractmethod
from enum import Enum
from typing import Awaitable, Callable, List, Optional

from pydantic import BaseModel, Field

from app.models.cart import CartLine
from app.models.product import PcPartType, Product, ProductCategory


class ProductQuery(BaseModel):
    """Server-side product filter. Only active products are ever listed."""
    category: Optional[ProductCategory] = None
    pc_part_type: Optional[PcPartType] = None
    featured: bool = False
    limit: Optional[int] = Field(None, ge=1)


class ProductLookup(ABC):
    """Read access to the product catalog."""

    @abstractmethod
    async def get_by_id(self, product_id: str) -> Optional[Product]:
        """Return the product or None when it does not exist."""

    @abstractmethod
    async def list(self, query: ProductQuery) -> List[Product]:
        """Return active products matching the query, newest first."""


class CartStore(ABC):
    """Server-backed cart lines keyed by (owner, product)."""

    @abstractmethod
    async def fetch_by_owner(self, owner_id: str) -> List[CartLine]:
        """All lines of an owner joined with current product data."""

    @abstractmethod
    async def upsert(self, owner_id: str, product_id: str, quantity: int) -> None:
        """Insert the line or overwrite the quantity of an existing one."""

    @abstractmethod
    async def increment(self, owner_id: str, product_id: str, quantity: int) -> None:
        """Insert the line or add to the quantity of an existing one."""

    @abstractmethod
    async def update_quantity(self, owner_id: str, product_id: str, quantity: int) -> None:
        """Set the quantity of an existing line; no-op when absent."""

    @abstractmethod
    async def delete_line(self, owner_id: str, product_id: str) -> None:
        """Delete one line; no-op when absent."""

    @abstractmethod
    async def delete_all_by_owner(self, owner_id: str) -> None:
        """Delete every line of an owner."""


class LocalDurableStore(ABC):
    """Durable key/value storage scoped to one device."""

    @abstractmethod
    async def get(self, key: str) -> Optional[bytes]:
        pass

    @abstractmethod
    async def set(self, key: str, value: bytes) -> None:
        pass

    @abstractmethod
    async def remove(self, key: str) -> None:
        pass


class IdentityEvent(str, Enum):
    """Identity transitions the cart reacts to."""
    SIGNED_IN = "signed_in"
    SIGNED_OUT = "signed_out"


IdentityListener = Callable[[IdentityEvent, Optional[str]], Awaitable[None]]


class IdentitySource(ABC):
    """Source of the current session and of sign-in/sign-out events."""

    @abstractmethod
    async def get_current_session(self) -> Optional[str]:
        """Identity of the signed-in user, or None for a guest."""

    @abstractmethod
    def subscribe(self, listener: IdentityListener) -> Callable[[], None]:
        """Register a listener; returns the callable that unsubscribes it."""
