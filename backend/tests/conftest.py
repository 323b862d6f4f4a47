"""
Shared fixtures: in-memory stand-ins for the cart store and catalog.
"""
from typing import Dict, List, Optional, Tuple

import pytest

from app.core.exceptions import TransientStoreError
from app.models.cart import CartLine
from app.models.product import PcPartType, Product, ProductCategory
from app.services.ports import CartStore, ProductLookup, ProductQuery


class FakeCartStore(CartStore):
    """Cart store kept in a dict, with call recording and failure injection."""

    def __init__(self):
        self.products: Dict[str, Product] = {}
        self.rows: Dict[Tuple[str, str], CartLine] = {}
        self.calls: List[tuple] = []
        self.fail_on = set()
        self.fail_products = set()

    def add_product(self, product: Product):
        self.products[product.id] = product

    def quantities(self, owner_id: str) -> Dict[str, int]:
        return {pid: line.quantity for (owner, pid), line in self.rows.items() if owner == owner_id}

    def _record(self, operation: str, *args):
        self.calls.append((operation,) + args)
        if operation in self.fail_on:
            raise TransientStoreError(operation)
        if len(args) > 1 and args[1] in self.fail_products:
            raise TransientStoreError(operation)

    async def fetch_by_owner(self, owner_id: str) -> List[CartLine]:
        self._record("fetch_by_owner", owner_id)
        return [
            line.model_copy(update={"product": self.products.get(pid)})
            for (owner, pid), line in self.rows.items()
            if owner == owner_id
        ]

    async def upsert(self, owner_id: str, product_id: str, quantity: int) -> None:
        self._record("upsert", owner_id, product_id, quantity)
        existing = self.rows.get((owner_id, product_id))
        if existing:
            existing.quantity = quantity
        else:
            self.rows[(owner_id, product_id)] = CartLine(user_id=owner_id, product_id=product_id, quantity=quantity)

    async def increment(self, owner_id: str, product_id: str, quantity: int) -> None:
        self._record("increment", owner_id, product_id, quantity)
        existing = self.rows.get((owner_id, product_id))
        if existing:
            existing.quantity += quantity
        else:
            self.rows[(owner_id, product_id)] = CartLine(user_id=owner_id, product_id=product_id, quantity=quantity)

    async def update_quantity(self, owner_id: str, product_id: str, quantity: int) -> None:
        self._record("update_quantity", owner_id, product_id, quantity)
        existing = self.rows.get((owner_id, product_id))
        if existing:
            existing.quantity = quantity

    async def delete_line(self, owner_id: str, product_id: str) -> None:
        self._record("delete_line", owner_id, product_id)
        self.rows.pop((owner_id, product_id), None)

    async def delete_all_by_owner(self, owner_id: str) -> None:
        self._record("delete_all_by_owner", owner_id)
        for key in [key for key in self.rows if key[0] == owner_id]:
            del self.rows[key]


class FakeProductLookup(ProductLookup):
    """Catalog backed by a list of products."""

    def __init__(self, products: Optional[List[Product]] = None):
        self.products = list(products or [])
        self.fail = False

    async def get_by_id(self, product_id: str) -> Optional[Product]:
        if self.fail:
            raise TransientStoreError("fetch product")
        return next((p for p in self.products if p.id == product_id), None)

    async def list(self, query: ProductQuery) -> List[Product]:
        if self.fail:
            raise TransientStoreError("list products")
        result = [p for p in self.products if p.is_active]
        if query.category:
            result = [p for p in result if p.category == query.category]
        if query.pc_part_type:
            result = [p for p in result if p.pc_part_type == query.pc_part_type]
        if query.featured:
            result = [p for p in result if p.is_featured]
        result.sort(key=lambda p: p.created_at, reverse=True)
        return result[:query.limit] if query.limit else result


@pytest.fixture
def make_product():
    """Factory for products with sensible defaults."""
    def _make(product_id="prod-1", name="Test Product", price=100.0, **overrides):
        data = {
            "id": product_id,
            "name": name,
            "price": price,
            "category": ProductCategory.PC_PARTS,
            "stock_quantity": 10,
        }
        data.update(overrides)
        return Product(**data)
    return _make


@pytest.fixture
def cart_store():
    return FakeCartStore()


@pytest.fixture
def pc_parts(make_product):
    """A small PC-parts catalog with one part per required slot."""
    return [
        make_product("cpu-1", "Ryzen 7 7800X3D", 449.0, sale_price=399.0,
                     pc_part_type=PcPartType.CPU, brand="AMD", specs={"socket": "AM5"}),
        make_product("cpu-2", "Core i7-14700K", 409.0,
                     pc_part_type=PcPartType.CPU, brand="Intel", specs={"socket": "LGA1700"}),
        make_product("mb-1", "B650 Tomahawk", 219.0,
                     pc_part_type=PcPartType.MOTHERBOARD, brand="MSI", specs={"socket": "AM5"}),
        make_product("ram-1", "Vengeance 32GB DDR5", 119.0,
                     pc_part_type=PcPartType.RAM, brand="Corsair", specs={"ram": "32GB"}),
        make_product("ssd-1", "990 Pro 2TB", 169.0,
                     pc_part_type=PcPartType.STORAGE, brand="Samsung", specs={"storage": "2TB"}),
        make_product("psu-1", "RM850x", 139.0, pc_part_type=PcPartType.PSU, brand="Corsair"),
        make_product("case-1", "Lancool 216", 99.0, pc_part_type=PcPartType.CASE, brand="Lian Li"),
        make_product("gpu-0", "RTX 4070", 549.0, pc_part_type=PcPartType.GPU, brand="NVIDIA",
                     stock_quantity=0),
    ]


@pytest.fixture
def catalog(make_product, pc_parts):
    """PC parts plus a phone and a retired product."""
    return FakeProductLookup(pc_parts + [
        make_product("phone-1", "Pixel 8", 699.0, category=ProductCategory.MOBILE, brand="Google",
                     specs={"storage": "256GB"}),
        make_product("retired", "Old Phone", 99.0, category=ProductCategory.MOBILE, is_active=False),
    ])
