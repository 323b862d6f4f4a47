import logging
from typing import List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from app.core.exceptions import TransientStoreError
from app.models.product import Product
from app.services.ports import ProductLookup, ProductQuery
from app.utils.helpers import format_document, id_filter

logger = logging.getLogger(__name__)


class MongoProductLookup(ProductLookup):
    """Product catalog read from the ``products`` collection."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db

    async def get_by_id(self, product_id: str) -> Optional[Product]:
        try:
            product = await self.db.products.find_one(id_filter(product_id))
        except PyMongoError as e:
            raise TransientStoreError("fetch product", e) from e

        if not product:
            return None
        return Product.model_validate(format_document(product))

    async def list(self, query: ProductQuery) -> List[Product]:
        filters = {"is_active": True}

        if query.category:
            filters["category"] = query.category.value
        if query.pc_part_type:
            filters["pc_part_type"] = query.pc_part_type.value
        if query.featured:
            filters["is_featured"] = True

        cursor = self.db.products.find(filters).sort("created_at", -1)
        if query.limit:
            cursor = cursor.limit(query.limit)

        try:
            products = await cursor.to_list(length=query.limit)
        except PyMongoError as e:
            raise TransientStoreError("list products", e) from e

        logger.debug(f"Listed {len(products)} products for {filters}")
        return [Product.model_validate(format_document(product)) for product in products]
