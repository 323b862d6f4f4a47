"""
Order service - turns a signed-in cart into a pending order.
"""
import logging
from typing import Any, Dict, List, Optional
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from app.models.cart import CartMode
from app.models.order import Order, OrderItem, OrderStatus, ShippingAddress
from app.services.cart_service import CartService

logger = logging.getLogger(__name__)


class OrderService:
    """Service class for checkout and order history."""

    @staticmethod
    def _failure(cart_service: CartService, message: str) -> Dict[str, Any]:
        cart_service.notifier.error(message)
        return {"success": False, "message": message}

    @staticmethod
    async def place_order(
        cart_service: CartService,
        shipping_address: ShippingAddress,
        notes: Optional[str],
        db: AsyncIOMotorDatabase
    ) -> Dict[str, Any]:
        """
        Place an order for everything in the cart, then clear the cart.

        Each line is priced at its current snapshot price (0 when the
        snapshot is missing). The order total is the cart total.

        Returns:
            ``{"success": bool, "message": str}`` plus ``order_id`` on success
        """
        if cart_service.mode != CartMode.AUTHENTICATED:
            return OrderService._failure(cart_service, "Please sign in to complete your order")

        lines = cart_service.items
        if not lines:
            return OrderService._failure(cart_service, "Your cart is empty")

        if shipping_address.missing_fields():
            return OrderService._failure(cart_service, "Please fill in all required shipping fields")

        order = Order(
            user_id=cart_service.user_id,
            status=OrderStatus.PENDING,
            total_amount=cart_service.total_price,
            shipping_address=shipping_address,
            notes=notes or None
        )
        order_items = [
            OrderItem(
                order_id=order.id,
                product_id=line.product_id,
                quantity=line.quantity,
                price_at_time=line.unit_price
            )
            for line in lines
        ]

        order_dict = order.model_dump(by_alias=True)
        order_dict["status"] = order.status.value

        try:
            await db.orders.insert_one(order_dict)
            await db.order_items.insert_many([item.model_dump(by_alias=True) for item in order_items])
        except PyMongoError as e:
            logger.error(f"Error creating order for {cart_service.user_id}: {e}")
            return OrderService._failure(cart_service, "Failed to place order. Please try again.")

        logger.info(f"Order {order.id} placed by {cart_service.user_id} for {order.total_amount:.2f}")

        await cart_service.clear()
        cart_service.notifier.success("Order placed successfully!")

        return {
            "success": True,
            "message": "Order placed successfully!",
            "order_id": order.id,
            "total_amount": order.total_amount
        }

    @staticmethod
    async def get_user_orders(user_id: str, db: AsyncIOMotorDatabase) -> List[dict]:
        """Orders of a user, newest first."""
        return await db.orders.find({"user_id": user_id}).sort("created_at", -1).to_list(length=None)
