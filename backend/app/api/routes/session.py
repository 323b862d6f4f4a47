from fastapi import APIRouter, Depends

from app.api.deps import get_cart_session
from app.api.routes.cart import build_cart_response
from app.schemas.cart import CartResponse, SignInRequest
from app.services.session_registry import CartSession

router = APIRouter()


@router.get("")
async def get_session(session: CartSession = Depends(get_cart_session)):
    """Who the device session is bound to."""
    return {
        "device_id": session.device_id,
        "user_id": await session.identity.get_current_session(),
        "mode": session.cart.mode
    }


@router.post("/sign-in", response_model=CartResponse)
async def sign_in(
    request: SignInRequest,
    session: CartSession = Depends(get_cart_session)
):
    """
    Bind the device session to a signed-in user.

    The guest cart stored for this device is merged into the user's cart
    before the response is returned.

    The asserted ``user_id`` is trusted as is. Before this is exposed, put
    an ``HTTPBearer`` token dependency in front of it that resolves the
    user from the token, so a caller can only sign in as themselves.
    """
    await session.identity.sign_in(request.user_id)
    return build_cart_response(session.cart)


@router.post("/sign-out", response_model=CartResponse)
async def sign_out(session: CartSession = Depends(get_cart_session)):
    """
    Return the device session to guest mode with an empty cart.
    """
    await session.identity.sign_out()
    return build_cart_response(session.cart)
