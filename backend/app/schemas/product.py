from typing import Dict, List, Optional
from datetime import datetime
from pydantic import BaseModel

from app.models.product import PcPartType, Product, ProductCategory


class ProductResponse(BaseModel):
    """Schema for product response."""
    id: str
    name: str
    description: Optional[str] = None
    price: float
    sale_price: Optional[float] = None
    effective_price: float
    category: ProductCategory
    pc_part_type: Optional[PcPartType] = None
    brand: Optional[str] = None
    model: Optional[str] = None
    image_url: Optional[str] = None
    images: List[str]
    stock_quantity: int
    low_stock: bool = False
    specs: Dict[str, Optional[str]]
    compatibility_notes: Optional[str] = None
    is_featured: bool
    created_at: datetime

    @classmethod
    def from_product(cls, product: Product) -> "ProductResponse":
        threshold = product.low_stock_threshold
        return cls(
            id=product.id,
            name=product.name,
            description=product.description,
            price=product.price,
            sale_price=product.sale_price,
            effective_price=product.effective_price,
            category=product.category,
            pc_part_type=product.pc_part_type,
            brand=product.brand,
            model=product.model,
            image_url=product.image_url,
            images=product.images,
            stock_quantity=product.stock_quantity,
            low_stock=threshold is not None and 0 < product.stock_quantity <= threshold,
            specs=product.specs,
            compatibility_notes=product.compatibility_notes,
            is_featured=product.is_featured,
            created_at=product.created_at
        )


class ProductListResponse(BaseModel):
    """Filtered listing plus the facets a filter panel needs."""
    items: List[ProductResponse]
    total: int
    available_brands: List[str]
    max_price: float
