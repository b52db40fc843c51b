"""
Checkout route: turns the caller's cart into an order plus a pending payment.
"""
from fastapi import APIRouter, Depends

from api.dependencies import get_checkout_service, get_current_user_id
from application.dtos.checkout import CheckoutRequest
from application.services.checkout_service import CheckoutService
from core.response import success_response


router = APIRouter(prefix="/checkout", tags=["Checkout"])


@router.post("", summary="Check out the current cart")
async def checkout(
    payload: CheckoutRequest,
    user_id: str = Depends(get_current_user_id),
    service: CheckoutService = Depends(get_checkout_service),
):
    result = await service.checkout(user_id, payload)
    return success_response(data=result.model_dump(mode="json"), message="Order created")
