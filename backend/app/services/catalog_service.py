"""
Product listing refinement and stock checks applied on top of a catalog query.
"""
from typing import List, Optional, Tuple
from pydantic import BaseModel, Field

from app.core.exceptions import InvalidOperationError
from app.models.product import Product

RAM_OPTIONS = ["8GB", "16GB", "32GB", "64GB", "128GB"]
STORAGE_OPTIONS = ["256GB", "512GB", "1TB", "2TB", "4TB"]


class FilterState(BaseModel):
    """Shopper-selected refinements for a product listing."""
    search: str = ""
    price_range: Optional[Tuple[float, float]] = None
    brands: List[str] = Field(default_factory=list)
    ram_options: List[str] = Field(default_factory=list)
    storage_options: List[str] = Field(default_factory=list)
    in_stock: bool = False

    @property
    def is_active(self) -> bool:
        return bool(
            self.search
            or self.price_range
            or self.brands
            or self.ram_options
            or self.storage_options
            or self.in_stock
        )


class CatalogService:
    """Listing filters and facets over already-fetched products."""

    @staticmethod
    def check_availability(product: Product, quantity: int, in_cart: int = 0):
        """
        Check that ``quantity`` more of ``product`` can be sold.

        Raises:
            InvalidOperationError: sold out, or stock below ``in_cart + quantity``
        """
        if product.stock_quantity < 1:
            raise InvalidOperationError(f"{product.name} is out of stock")
        if in_cart + quantity > product.stock_quantity:
            raise InvalidOperationError(
                f"Insufficient stock. Available: {product.stock_quantity}, in cart: {in_cart}"
            )

    @staticmethod
    def matches(product: Product, filters: FilterState) -> bool:
        """
        Check one product against every active refinement.

        Brand, RAM and storage refinements only apply to products that carry
        that attribute; products without it are never excluded by them.
        """
        if filters.search:
            needle = filters.search.lower()
            haystacks = [product.name, product.brand or "", product.description or ""]
            if not any(needle in text.lower() for text in haystacks):
                return False

        if filters.price_range is not None:
            low, high = filters.price_range
            if product.effective_price < low or product.effective_price > high:
                return False

        if filters.brands and product.brand:
            if product.brand not in filters.brands:
                return False

        ram = product.specs.get("ram")
        if filters.ram_options and ram:
            if not any(option in ram for option in filters.ram_options):
                return False

        storage = product.specs.get("storage")
        if filters.storage_options and storage:
            if not any(option in storage for option in filters.storage_options):
                return False

        if filters.in_stock and product.stock_quantity == 0:
            return False

        return True

    @staticmethod
    def filter_products(products: List[Product], filters: FilterState) -> List[Product]:
        """Products that pass every refinement, in their original order."""
        return [product for product in products if CatalogService.matches(product, filters)]

    @staticmethod
    def available_brands(products: List[Product]) -> List[str]:
        """Distinct brands, sorted, for the brand facet."""
        return sorted({product.brand for product in products if product.brand})

    @staticmethod
    def max_price(products: List[Product]) -> float:
        """Upper bound for the price slider."""
        return max((product.effective_price for product in products), default=0.0)
