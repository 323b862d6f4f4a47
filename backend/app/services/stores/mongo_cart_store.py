"""
MongoDB-backed cart store.

Lines live in the ``cart_items`` collection, one document per
(user_id, product_id) pair enforced by a unique index. Every write is a
single-document operation, so concurrent writers to the same line are
resolved by MongoDB itself.
"""
import logging
from typing import List

from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import ValidationError
from pymongo.errors import PyMongoError

from app.core.exceptions import TransientStoreError
from app.models.cart import CartLine
from app.models.product import Product
from app.services.ports import CartStore
from app.utils.helpers import format_document, generate_id, get_current_timestamp

logger = logging.getLogger(__name__)


class MongoCartStore(CartStore):
    """Cart lines of authenticated users."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db

    async def fetch_by_owner(self, owner_id: str) -> List[CartLine]:
        pipeline = [
            {"$match": {"user_id": owner_id}},
            {"$lookup": {
                "from": "products",
                "localField": "product_id",
                "foreignField": "_id",
                "as": "product"
            }},
            {"$unwind": {"path": "$product", "preserveNullAndEmptyArrays": True}},
            {"$sort": {"created_at": 1}}
        ]

        try:
            documents = await self.db.cart_items.aggregate(pipeline).to_list(length=None)
        except PyMongoError as e:
            raise TransientStoreError("fetch cart", e) from e

        return [self._to_line(doc) for doc in documents]

    async def upsert(self, owner_id: str, product_id: str, quantity: int) -> None:
        now = get_current_timestamp()
        await self._update_line(
            "upsert cart line",
            owner_id,
            product_id,
            {
                "$set": {"quantity": quantity, "updated_at": now},
                "$setOnInsert": {"_id": generate_id(), "created_at": now}
            },
            upsert=True
        )

    async def increment(self, owner_id: str, product_id: str, quantity: int) -> None:
        now = get_current_timestamp()
        await self._update_line(
            "increment cart line",
            owner_id,
            product_id,
            {
                "$inc": {"quantity": quantity},
                "$set": {"updated_at": now},
                "$setOnInsert": {"_id": generate_id(), "created_at": now}
            },
            upsert=True
        )

    async def update_quantity(self, owner_id: str, product_id: str, quantity: int) -> None:
        await self._update_line(
            "update cart line",
            owner_id,
            product_id,
            {"$set": {"quantity": quantity, "updated_at": get_current_timestamp()}},
            upsert=False
        )

    async def delete_line(self, owner_id: str, product_id: str) -> None:
        try:
            await self.db.cart_items.delete_one({"user_id": owner_id, "product_id": product_id})
        except PyMongoError as e:
            raise TransientStoreError("delete cart line", e) from e

    async def delete_all_by_owner(self, owner_id: str) -> None:
        try:
            await self.db.cart_items.delete_many({"user_id": owner_id})
        except PyMongoError as e:
            raise TransientStoreError("clear cart", e) from e

    async def _update_line(self, operation: str, owner_id: str, product_id: str, update: dict, upsert: bool):
        try:
            await self.db.cart_items.update_one(
                {"user_id": owner_id, "product_id": product_id},
                update,
                upsert=upsert
            )
        except PyMongoError as e:
            raise TransientStoreError(operation, e) from e

    @staticmethod
    def _to_line(document: dict) -> CartLine:
        product = None
        if document.get("product"):
            try:
                product = Product.model_validate(format_document(document["product"]))
            except ValidationError as e:
                logger.warning(f"Ignoring unreadable product snapshot for {document.get('product_id')}: {e}")

        return CartLine(
            id=str(document["_id"]),
            user_id=document["user_id"],
            product_id=document["product_id"],
            quantity=document["quantity"],
            created_at=document["created_at"],
            updated_at=document.get("updated_at", document["created_at"]),
            product=product
        )
