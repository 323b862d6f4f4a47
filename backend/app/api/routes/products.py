from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, status, Query

from app.api.deps import get_product_lookup
from app.core.exceptions import TransientStoreError
from app.models.product import PcPartType, ProductCategory
from app.schemas.product import ProductListResponse, ProductResponse
from app.services.catalog_service import CatalogService, FilterState
from app.services.ports import ProductLookup, ProductQuery

router = APIRouter()


@router.get("", response_model=ProductListResponse)
async def get_products(
    category: Optional[ProductCategory] = None,
    pc_part_type: Optional[PcPartType] = None,
    featured: bool = False,
    limit: Optional[int] = Query(None, ge=1, le=200),
    search: str = "",
    price_min: Optional[float] = Query(None, ge=0),
    price_max: Optional[float] = Query(None, ge=0),
    brands: List[str] = Query([]),
    ram: List[str] = Query([]),
    storage: List[str] = Query([]),
    in_stock: bool = False,
    products: ProductLookup = Depends(get_product_lookup)
):
    """
    Get active products, newest first, with optional filters.

    Catalog filters:
    - category, pc_part_type, featured, limit

    Listing refinements:
    - search: matches name, brand or description
    - price_min / price_max: bounds on the effective price
    - brands, ram, storage: facet selections
    - in_stock: hide sold-out products
    """
    try:
        catalog = await products.list(ProductQuery(
            category=category,
            pc_part_type=pc_part_type,
            featured=featured,
            limit=limit
        ))
    except TransientStoreError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Product catalog unavailable"
        )

    price_range = None
    if price_min is not None or price_max is not None:
        price_range = (
            price_min if price_min is not None else 0.0,
            price_max if price_max is not None else float("inf")
        )

    filters = FilterState(
        search=search,
        price_range=price_range,
        brands=brands,
        ram_options=ram,
        storage_options=storage,
        in_stock=in_stock
    )
    matching = CatalogService.filter_products(catalog, filters)

    return ProductListResponse(
        items=[ProductResponse.from_product(product) for product in matching],
        total=len(matching),
        available_brands=CatalogService.available_brands(catalog),
        max_price=CatalogService.max_price(catalog)
    )


@router.get("/{product_id}", response_model=ProductResponse)
async def get_product(
    product_id: str,
    products: ProductLookup = Depends(get_product_lookup)
):
    """
    Get a single product by id.
    """
    try:
        product = await products.get_by_id(product_id)
    except TransientStoreError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Product catalog unavailable"
        )

    if not product:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Product not found"
        )

    return ProductResponse.from_product(product)
