from datetime import datetime
from typing import Optional
from enum import Enum
from pydantic import BaseModel, Field

from app.utils.helpers import generate_id, get_current_timestamp


class OrderStatus(str, Enum):
    """Order status enumeration."""
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


REQUIRED_SHIPPING_FIELDS = ("full_name", "address", "city", "state", "zip_code", "country")


class ShippingAddress(BaseModel):
    """Where an order ships to."""
    full_name: str = ""
    address: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""
    country: str = ""
    phone: Optional[str] = None

    def missing_fields(self) -> list:
        """Names of required fields left blank."""
        return [name for name in REQUIRED_SHIPPING_FIELDS if not getattr(self, name).strip()]


class OrderItem(BaseModel):
    """Product line of a placed order, priced at checkout time."""
    id: str = Field(default_factory=generate_id, alias="_id")
    order_id: str
    product_id: Optional[str] = None
    quantity: int = Field(gt=0)
    price_at_time: float = Field(ge=0)
    created_at: datetime = Field(default_factory=get_current_timestamp)

    class Config:
        populate_by_name = True


class Order(BaseModel):
    """Order model for MongoDB."""
    id: str = Field(default_factory=generate_id, alias="_id")
    user_id: Optional[str] = None
    status: OrderStatus = OrderStatus.PENDING
    total_amount: float = Field(ge=0)
    shipping_address: Optional[ShippingAddress] = None
    notes: Optional[str] = None
    created_at: datetime = Field(default_factory=get_current_timestamp)
    updated_at: datetime = Field(default_factory=get_current_timestamp)

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "user_id": "user123",
                "status": "pending",
                "total_amount": 848.0,
                "shipping_address": {
                    "full_name": "John Doe",
                    "address": "1 Main St",
                    "city": "Springfield",
                    "state": "IL",
                    "zip_code": "62701",
                    "country": "US"
                }
            }
        }
