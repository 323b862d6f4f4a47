"""
Device-scoped key/value stores holding the guest cart.
"""
from typing import Dict, Optional

from bson import Binary
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from app.core.exceptions import TransientStoreError
from app.services.ports import LocalDurableStore


class MemoryDeviceStore(LocalDurableStore):
    """Process-local storage; contents vanish with the process."""

    def __init__(self, initial: Optional[Dict[str, bytes]] = None):
        self.data: Dict[str, bytes] = dict(initial or {})

    async def get(self, key: str) -> Optional[bytes]:
        return self.data.get(key)

    async def set(self, key: str, value: bytes) -> None:
        self.data[key] = value

    async def remove(self, key: str) -> None:
        self.data.pop(key, None)


class MongoDeviceStore(LocalDurableStore):
    """Storage for one device kept in the ``device_storage`` collection."""

    def __init__(self, db: AsyncIOMotorDatabase, device_id: str):
        self.db = db
        self.device_id = device_id

    async def get(self, key: str) -> Optional[bytes]:
        try:
            document = await self.db.device_storage.find_one({"device_id": self.device_id, "key": key})
        except PyMongoError as e:
            raise TransientStoreError("read device storage", e) from e

        if not document:
            return None
        return bytes(document["value"])

    async def set(self, key: str, value: bytes) -> None:
        try:
            await self.db.device_storage.update_one(
                {"device_id": self.device_id, "key": key},
                {"$set": {"value": Binary(value)}},
                upsert=True
            )
        except PyMongoError as e:
            raise TransientStoreError("write device storage", e) from e

    async def remove(self, key: str) -> None:
        try:
            await self.db.device_storage.delete_one({"device_id": self.device_id, "key": key})
        except PyMongoError as e:
            raise TransientStoreError("erase device storage", e) from e
