from typing import List, Optional
from pydantic import BaseModel, Field

from app.models.cart import CartLine, CartMode
from app.services.notifications import Notification


class OperationResult(BaseModel):
    """Outcome of a cart operation as reported to the caller."""
    success: bool
    message: str = ""
    # The change was stored but the cart shown may not include it yet
    stale: bool = False


class AddToCartRequest(BaseModel):
    """Schema for adding a product to cart."""
    product_id: str = Field(min_length=1)
    quantity: int = Field(default=1, gt=0)

    class Config:
        json_schema_extra = {
            "example": {
                "product_id": "9b2f6a0e-6d1c-4b6e-9a43-5f0f1c2d3e4a",
                "quantity": 2
            }
        }


class UpdateCartItemRequest(BaseModel):
    """Schema for updating cart item quantity. Below 1 removes the line."""
    quantity: int

    class Config:
        json_schema_extra = {
            "example": {
                "quantity": 3
            }
        }


class SignInRequest(BaseModel):
    """Identity asserted for the device session."""
    user_id: str = Field(min_length=1)


class CartItemResponse(BaseModel):
    """Schema for cart item response."""
    id: str
    product_id: str
    quantity: int
    name: Optional[str] = None
    image_url: Optional[str] = None
    price: Optional[float] = None
    sale_price: Optional[float] = None
    unit_price: float
    subtotal: float
    stock_quantity: Optional[int] = None
    stock_warning: bool = False

    @classmethod
    def from_line(cls, line: CartLine) -> "CartItemResponse":
        product = line.product
        return cls(
            id=line.id,
            product_id=line.product_id,
            quantity=line.quantity,
            name=product.name if product else None,
            image_url=product.image_url if product else None,
            price=product.price if product else None,
            sale_price=product.sale_price if product else None,
            unit_price=line.unit_price,
            subtotal=line.subtotal,
            stock_quantity=product.stock_quantity if product else None,
            stock_warning=bool(product and product.stock_quantity < line.quantity)
        )


class CartResponse(BaseModel):
    """Schema for cart response."""
    mode: CartMode
    user_id: Optional[str] = None
    items: List[CartItemResponse]
    total_items: int
    total_price: float
    result: Optional[OperationResult] = None
    notifications: List[Notification] = Field(default_factory=list)
