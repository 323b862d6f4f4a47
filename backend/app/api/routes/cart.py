from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, status

from app.api.deps import get_cart_service, get_product_lookup
from app.core.exceptions import InvalidOperationError, TransientStoreError
from app.schemas.cart import (
    AddToCartRequest,
    CartItemResponse,
    CartResponse,
    OperationResult,
    UpdateCartItemRequest
)
from app.services.cart_service import CartService
from app.services.catalog_service import CatalogService
from app.services.ports import ProductLookup

router = APIRouter()


def build_cart_response(cart: CartService, result: Optional[OperationResult] = None) -> CartResponse:
    """Render the cart and hand over any pending notifications."""
    return CartResponse(
        mode=cart.mode,
        user_id=cart.user_id,
        items=[CartItemResponse.from_line(line) for line in cart.items],
        total_items=cart.total_item_count,
        total_price=cart.total_price,
        result=result,
        notifications=cart.notifier.drain()
    )


@router.get("", response_model=CartResponse)
async def get_cart(cart: CartService = Depends(get_cart_service)):
    """
    Get the caller's cart.

    Returns:
    - Every line with its product snapshot and subtotal
    - Total item count and total price

    A cart left stale by an earlier failed re-read is fetched again first.
    """
    if cart.is_stale:
        await cart.refresh()
    return build_cart_response(cart)


@router.post("/items", response_model=CartResponse)
async def add_to_cart(
    request: AddToCartRequest,
    cart: CartService = Depends(get_cart_service),
    products: ProductLookup = Depends(get_product_lookup)
):
    """
    Add a product to the cart.

    If the product is already in the cart, its quantity grows by the
    requested amount. Sold-out products and quantities beyond stock are
    rejected with 400.
    """
    try:
        product = await products.get_by_id(request.product_id)
    except TransientStoreError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Product catalog unavailable"
        )

    if not product or not product.is_active:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Product not found"
        )

    in_cart = sum(line.quantity for line in cart.items if line.product_id == product.id)
    try:
        CatalogService.check_availability(product, request.quantity, in_cart)
        result = await cart.add_item(product, request.quantity)
    except InvalidOperationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return build_cart_response(cart, result)


@router.put("/items/{product_id}", response_model=CartResponse)
async def update_cart_item(
    product_id: str,
    request: UpdateCartItemRequest,
    cart: CartService = Depends(get_cart_service)
):
    """
    Set the quantity of a cart line. A quantity below 1 removes the line.
    """
    result = await cart.update_quantity(product_id, request.quantity)
    return build_cart_response(cart, result)


@router.delete("/items/{product_id}", response_model=CartResponse)
async def remove_from_cart(
    product_id: str,
    cart: CartService = Depends(get_cart_service)
):
    """
    Remove a product from the cart. Removing an absent product succeeds.
    """
    result = await cart.remove_item(product_id)
    return build_cart_response(cart, result)


@router.delete("", response_model=CartResponse)
async def clear_cart(cart: CartService = Depends(get_cart_service)):
    """
    Clear all items from the cart.
    """
    result = await cart.clear()
    return build_cart_response(cart, result)
