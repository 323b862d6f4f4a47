import uuid
from datetime import datetime, timezone
from bson import ObjectId


def object_id_to_str(obj_id) -> str:
    """Convert ObjectId to string."""
    if isinstance(obj_id, ObjectId):
        return str(obj_id)
    return obj_id


def id_filter(document_id: str) -> dict:
    """
    Build an ``_id`` filter matching both string ids and ObjectIds.

    Products seeded from the storefront use uuid strings, products created
    through MongoDB tooling get ObjectIds.
    """
    if ObjectId.is_valid(document_id):
        return {"_id": {"$in": [document_id, ObjectId(document_id)]}}
    return {"_id": document_id}


def format_document(document: dict) -> dict:
    """Normalise a MongoDB document so ``_id`` is a plain string."""
    if document and "_id" in document:
        document["_id"] = object_id_to_str(document["_id"])
    return document


def generate_id() -> str:
    """Generate an opaque unique identifier."""
    return str(uuid.uuid4())


def get_current_timestamp() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(timezone.utc)
