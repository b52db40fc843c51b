"""
Cart routes. A cart belongs to a signed-in user or, before sign-in, to a guest
token sent in the X-Guest-Id header.
"""
from typing import Optional

from fastapi import APIRouter, Depends

from api.dependencies import get_cart_service, get_current_user_id, get_guest_token, get_optional_user_id
from application.dtos.checkout import CartItemDTO, MergeCartRequest
from application.services.cart_service import CartService
from core.response import success_response
from domain.common.exceptions import DomainValidationException


router = APIRouter(prefix="/cart", tags=["Cart"])


def _identity(user_id: Optional[str], guest_token: Optional[str]) -> dict:
    if user_id:
        return {"user_id": user_id}
    if guest_token:
        return {"guest_token": guest_token}
    raise DomainValidationException("Sign in or send X-Guest-Id", field="identity")


@router.get("", summary="Get the current cart")
async def get_cart(
    user_id: Optional[str] = Depends(get_optional_user_id),
    guest_token: Optional[str] = Depends(get_guest_token),
    service: CartService = Depends(get_cart_service),
):
    cart = await service.resolve(**_identity(user_id, guest_token))
    return success_response(data=cart.model_dump(mode="json"))


@router.post("/items", summary="Add an item to the cart")
async def add_item(
    payload: CartItemDTO,
    user_id: Optional[str] = Depends(get_optional_user_id),
    guest_token: Optional[str] = Depends(get_guest_token),
    service: CartService = Depends(get_cart_service),
):
    cart = await service.add_item(payload, **_identity(user_id, guest_token))
    return success_response(data=cart.model_dump(mode="json"))


@router.post("/merge", summary="Merge a guest cart into my cart")
async def merge_cart(
    payload: MergeCartRequest,
    user_id: str = Depends(get_current_user_id),
    service: CartService = Depends(get_cart_service),
):
    cart = await service.merge_guest_cart(payload.guest_token, user_id)
    return success_response(data=cart.model_dump(mode="json"), message="Cart merged")
