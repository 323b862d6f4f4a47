from datetime import datetime
from typing import Dict, List, Optional
from enum import Enum
from pydantic import BaseModel, Field

from app.utils.helpers import get_current_timestamp


class ProductCategory(str, Enum):
    """Top-level storefront categories."""
    PC = "pc"
    PC_PARTS = "pc_parts"
    MOBILE = "mobile"
    MOBILE_ACCESSORIES = "mobile_accessories"


class PcPartType(str, Enum):
    """Component slot a PC part fills."""
    CPU = "cpu"
    GPU = "gpu"
    RAM = "ram"
    STORAGE = "storage"
    MOTHERBOARD = "motherboard"
    PSU = "psu"
    CASE = "case"
    COOLING = "cooling"


class Product(BaseModel):
    """Product model for MongoDB."""
    id: str = Field(alias="_id")
    name: str
    description: Optional[str] = None
    price: float = Field(ge=0)
    sale_price: Optional[float] = Field(None, ge=0)
    category: ProductCategory
    pc_part_type: Optional[PcPartType] = None
    brand: Optional[str] = None
    model: Optional[str] = None
    image_url: Optional[str] = None
    images: List[str] = Field(default_factory=list)
    stock_quantity: int = Field(default=0, ge=0)
    low_stock_threshold: Optional[int] = None
    specs: Dict[str, Optional[str]] = Field(default_factory=dict)  # ram, cpu, storage, socket, ...
    compatibility_notes: Optional[str] = None
    is_featured: bool = False
    is_active: bool = True
    created_at: datetime = Field(default_factory=get_current_timestamp)
    updated_at: datetime = Field(default_factory=get_current_timestamp)

    @property
    def effective_price(self) -> float:
        """Price a customer pays: the sale price whenever one is set, even 0."""
        return self.sale_price if self.sale_price is not None else self.price

    @property
    def in_stock(self) -> bool:
        return self.stock_quantity > 0

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "_id": "9b2f6a0e-6d1c-4b6e-9a43-5f0f1c2d3e4a",
                "name": "Ryzen 7 7800X3D",
                "description": "8-core gaming processor with 3D V-Cache",
                "price": 449.0,
                "sale_price": 399.0,
                "category": "pc_parts",
                "pc_part_type": "cpu",
                "brand": "AMD",
                "stock_quantity": 12,
                "specs": {"socket": "AM5"},
                "is_featured": True
            }
        }
