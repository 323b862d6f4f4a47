from datetime import datetime
from typing import List, Optional
from enum import Enum
from pydantic import BaseModel, Field

from app.models.product import Product
from app.utils.helpers import generate_id, get_current_timestamp

# Owner id carried by every line of an anonymous cart
GUEST_OWNER_ID = "guest"


class CartMode(str, Enum):
    """Which backend currently owns the cart."""
    GUEST = "guest"
    AUTHENTICATED = "authenticated"


class CartLine(BaseModel):
    """One product line in a shopping cart."""
    id: str = Field(default_factory=generate_id)
    user_id: str = GUEST_OWNER_ID
    product_id: str
    quantity: int = Field(ge=1)
    created_at: datetime = Field(default_factory=get_current_timestamp)
    updated_at: datetime = Field(default_factory=get_current_timestamp)
    # Denormalized snapshot, may be stale relative to the catalog
    product: Optional[Product] = None

    @property
    def unit_price(self) -> float:
        """The product's effective price, or 0 when no snapshot is attached."""
        if self.product is None:
            return 0.0
        return self.product.effective_price

    @property
    def subtotal(self) -> float:
        return self.unit_price * self.quantity

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "id": "0b5c8d8e-3f7e-4f55-9d0a-2a8f0e1c7b11",
                "user_id": "guest",
                "product_id": "9b2f6a0e-6d1c-4b6e-9a43-5f0f1c2d3e4a",
                "quantity": 2,
                "created_at": "2024-01-01T00:00:00",
                "updated_at": "2024-01-01T00:00:00"
            }
        }


def total_item_count(lines: List[CartLine]) -> int:
    """Sum of quantities across all lines."""
    return sum(line.quantity for line in lines)


def total_price(lines: List[CartLine]) -> float:
    """Sum of unit price times quantity; lines without a snapshot add nothing."""
    return sum((line.subtotal for line in lines), 0.0)
