import logging

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING

from app.core.config import settings

logger = logging.getLogger(__name__)

# Global MongoDB client
_client: AsyncIOMotorClient = None
_database: AsyncIOMotorDatabase = None


async def connect_to_mongo():
    """Connect to MongoDB."""
    global _client, _database
    _client = AsyncIOMotorClient(settings.MONGODB_URI)
    _database = _client[settings.MONGODB_DB_NAME]
    logger.info(f"Connected to MongoDB: {settings.MONGODB_DB_NAME}")


async def close_mongo_connection():
    """Close MongoDB connection."""
    global _client
    if _client:
        _client.close()
        logger.info("Closed MongoDB connection")


def get_database() -> AsyncIOMotorDatabase:
    """Get MongoDB database instance."""
    return _database


async def ensure_indexes(db: AsyncIOMotorDatabase):
    """
    Create the indexes the cart and catalog queries rely on.

    The unique (user_id, product_id) index is what makes the cart upsert
    the single arbiter for concurrent writes to the same line.
    """
    await db.cart_items.create_index(
        [("user_id", ASCENDING), ("product_id", ASCENDING)],
        unique=True
    )
    await db.products.create_index([("is_active", ASCENDING), ("created_at", DESCENDING)])
    await db.device_storage.create_index(
        [("device_id", ASCENDING), ("key", ASCENDING)],
        unique=True
    )
