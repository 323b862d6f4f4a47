from typing import List, Optional
from datetime import datetime
from pydantic import BaseModel

from app.models.order import OrderStatus, ShippingAddress
from app.services.notifications import Notification


class CheckoutRequest(BaseModel):
    """Schema for placing an order from the cart."""
    shipping_address: ShippingAddress
    notes: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "shipping_address": {
                    "full_name": "John Doe",
                    "address": "1 Main St",
                    "city": "Springfield",
                    "state": "IL",
                    "zip_code": "62701",
                    "country": "US",
                    "phone": "+1 555 000 0000"
                },
                "notes": "Leave at the door"
            }
        }


class CheckoutResponse(BaseModel):
    """Schema for checkout response."""
    success: bool
    message: str
    order_id: Optional[str] = None
    total_amount: Optional[float] = None
    notifications: List[Notification] = []


class OrderResponse(BaseModel):
    """Schema for order response."""
    id: str
    status: OrderStatus
    total_amount: float
    shipping_address: Optional[ShippingAddress] = None
    notes: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True
