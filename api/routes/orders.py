from fastapi import APIRouter, Depends, Query

from api.dependencies import get_current_user_id, get_order_service
from application.services.order_service import OrderService
from core.response import success_response


router = APIRouter(prefix="/orders", tags=["Orders"])


@router.get("", summary="List my orders")
async def list_orders(
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=200),
    user_id: str = Depends(get_current_user_id),
    service: OrderService = Depends(get_order_service),
):
    orders = await service.list_user_orders(user_id, skip=skip, limit=limit)
    return success_response(data=[o.model_dump(mode="json") for o in orders])


@router.get("/{order_id}", summary="Get one of my orders")
async def get_order(
    order_id: str,
    user_id: str = Depends(get_current_user_id),
    service: OrderService = Depends(get_order_service),
):
    order = await service.get_order(user_id, order_id)
    return success_response(data=order.model_dump(mode="json"))


@router.post("/{order_id}/cancel", summary="Cancel an unpaid order")
async def cancel_order(
    order_id: str,
    user_id: str = Depends(get_current_user_id),
    service: OrderService = Depends(get_order_service),
):
    order = await service.cancel_order(user_id, order_id)
    return success_response(data=order.model_dump(mode="json"), message="Order cancelled")
