from typing import Optional
from fastapi import Depends, Header, HTTPException, Request, status
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.core.database import get_database
from app.services.cart_service import CartService
from app.services.ports import ProductLookup
from app.services.session_registry import CartSession, CartSessionRegistry
from app.services.stores.product_lookup import MongoProductLookup


async def get_db() -> AsyncIOMotorDatabase:
    """Dependency to get database instance."""
    return get_database()


def get_session_registry(request: Request) -> CartSessionRegistry:
    """Dependency to get the registry created at startup."""
    return request.app.state.cart_sessions


async def get_device_id(x_device_id: Optional[str] = Header(None)) -> str:
    """
    Dependency reading the device identifier of the caller.

    Raises:
        HTTPException: If the X-Device-Id header is missing or blank
    """
    if not x_device_id or not x_device_id.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Device-Id header is required"
        )
    return x_device_id.strip()


async def get_cart_session(
    device_id: str = Depends(get_device_id),
    registry: CartSessionRegistry = Depends(get_session_registry)
) -> CartSession:
    """Dependency to get (or open) the caller's cart session."""
    return await registry.get(device_id)


async def get_cart_service(session: CartSession = Depends(get_cart_session)) -> CartService:
    """Dependency to get the caller's cart."""
    return session.cart


async def get_product_lookup(db: AsyncIOMotorDatabase = Depends(get_db)) -> ProductLookup:
    """Dependency to get the product catalog."""
    return MongoProductLookup(db)
