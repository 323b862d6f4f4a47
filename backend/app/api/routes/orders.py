from typing import List
from fastapi import APIRouter, Depends, HTTPException, status
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from app.api.deps import get_cart_service, get_db
from app.schemas.order import CheckoutRequest, CheckoutResponse, OrderResponse
from app.services.cart_service import CartService
from app.services.order_service import OrderService
from app.utils.helpers import format_document

router = APIRouter()


@router.post("/checkout", response_model=CheckoutResponse)
async def checkout(
    request: CheckoutRequest,
    cart: CartService = Depends(get_cart_service),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    """
    Place an order for the signed-in cart.

    Validates:
    - The device session is signed in
    - The cart is not empty
    - Required shipping fields are filled in

    On success the cart is cleared.
    """
    result = await OrderService.place_order(
        cart_service=cart,
        shipping_address=request.shipping_address,
        notes=request.notes,
        db=db
    )
    return CheckoutResponse(**result, notifications=cart.notifier.drain())


@router.get("", response_model=List[OrderResponse])
async def get_my_orders(
    cart: CartService = Depends(get_cart_service),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    """
    Get orders of the signed-in user, newest first.
    """
    if not cart.user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Please sign in to view your orders"
        )

    try:
        orders = await OrderService.get_user_orders(cart.user_id, db)
    except PyMongoError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Orders unavailable"
        )

    return [
        OrderResponse(
            id=order["_id"],
            status=order["status"],
            total_amount=order["total_amount"],
            shipping_address=order.get("shipping_address"),
            notes=order.get("notes"),
            created_at=order["created_at"]
        )
        for order in map(format_document, orders)
    ]
