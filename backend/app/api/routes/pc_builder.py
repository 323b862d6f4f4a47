from typing import Dict, List, Optional
from fastapi import APIRouter, Depends, HTTPException, status

from app.api.deps import get_cart_service, get_product_lookup
from app.api.routes.cart import build_cart_response
from app.core.exceptions import InvalidOperationError, TransientStoreError
from app.models.product import ProductCategory
from app.schemas.cart import CartResponse
from app.schemas.pc_builder import BuildRequest, BuildSummaryResponse
from app.schemas.product import ProductResponse
from app.services.cart_service import CartService
from app.services.catalog_service import CatalogService
from app.services.pc_builder_service import BUILD_STEPS, BuildStep, PCBuild
from app.services.ports import ProductLookup, ProductQuery

router = APIRouter()


async def _build_from_request(
    request: BuildRequest,
    products: ProductLookup,
    in_cart: Optional[Dict[str, int]] = None
) -> PCBuild:
    """
    Replay the requested selections through the wizard.

    Retired parts are 404, sold-out parts or parts whose stock is already
    used up by ``in_cart`` quantities are 400.
    """
    in_cart = in_cart or {}
    build = PCBuild()
    for index, step in enumerate(build.steps):
        product_id = request.parts.get(step.type)
        if not product_id:
            continue

        try:
            product = await products.get_by_id(product_id)
        except TransientStoreError:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Product catalog unavailable"
            )
        if not product or not product.is_active:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Product not found: {product_id}"
            )

        build.go_to_step(index)
        try:
            CatalogService.check_availability(product, 1, in_cart.get(product.id, 0))
            build.select_part(product)
        except InvalidOperationError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return build


def _summary(build: PCBuild, results=None) -> BuildSummaryResponse:
    return BuildSummaryResponse(
        steps=build.steps,
        selected={part_type: part.id for part_type, part in build.selected.items() if part},
        total_price=build.total_price,
        completed_steps=build.completed_steps,
        required_complete=build.required_complete,
        progress=build.progress,
        warnings=build.compatibility_warnings(),
        results=results or []
    )


@router.get("/steps", response_model=List[BuildStep])
async def get_build_steps():
    """
    Ordered component slots of the wizard.
    """
    return BUILD_STEPS


@router.get("/steps/{index}/parts", response_model=List[ProductResponse])
async def get_step_parts(
    index: int,
    products: ProductLookup = Depends(get_product_lookup)
):
    """
    In-stock parts that fit the given step.
    """
    if not 0 <= index < len(BUILD_STEPS):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Build step not found"
        )

    step = BUILD_STEPS[index]
    try:
        catalog = await products.list(ProductQuery(
            category=ProductCategory.PC_PARTS,
            pc_part_type=step.type
        ))
    except TransientStoreError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Product catalog unavailable"
        )

    return [ProductResponse.from_product(p) for p in PCBuild().parts_for_step(catalog, step)]


@router.post("/summary", response_model=BuildSummaryResponse)
async def summarize_build(
    request: BuildRequest,
    products: ProductLookup = Depends(get_product_lookup)
):
    """
    Price a build and report progress and compatibility warnings.
    """
    build = await _build_from_request(request, products)
    return _summary(build)


@router.post("/add-to-cart", response_model=CartResponse)
async def add_build_to_cart(
    request: BuildRequest,
    cart: CartService = Depends(get_cart_service),
    products: ProductLookup = Depends(get_product_lookup)
):
    """
    Add one of every selected part to the cart.
    """
    in_cart = {line.product_id: line.quantity for line in cart.items}
    build = await _build_from_request(request, products, in_cart)
    try:
        await build.add_all_to_cart(cart)
    except InvalidOperationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return build_cart_response(cart)
