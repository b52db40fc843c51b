"""Order read/cancel workflows and the shared cancel-and-release step."""
from __future__ import annotations

from typing import Callable, List, Optional

from application.dtos.checkout import OrderDTO
from application.ports.notifier import Notifier, notify_safely
from core.logging_config import get_logger
from domain.catalog.service import SkippedRelease, StockReservationService
from domain.common.exceptions import OrderNotFoundException, OrderStatusConflictException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import Order, OrderStatus
from domain.payment.entity import PaymentStatus
from domain.payment.service import PaymentDomainService


logger = get_logger(__name__)


async def cancel_and_release(
    order: Order,
    uow: AbstractUnitOfWork,
    reservation: Optional[StockReservationService] = None,
) -> List[SkippedRelease]:
    """Cancel `order` and give its stock back inside the caller's unit of work.

    Lines whose product or variant no longer exists are logged and skipped.
    """
    order.cancel()
    skipped = await (reservation or StockReservationService()).release_stock(order.items, uow)
    for line in skipped:
        logger.warning(
            "stock_release_skipped",
            order_id=order.id,
            product_id=line.product_id,
            sku=line.sku,
            quantity=line.quantity,
            reason=line.reason,
        )
    await uow.orders.update(order)
    return skipped


class OrderService:
    """Customer-facing order queries and cancellation."""

    def __init__(self, uow_factory: Callable[..., AbstractUnitOfWork], notifier: Optional[Notifier] = None):
        self._uow_factory = uow_factory
        self._notifier = notifier
        self._reservation = StockReservationService()

    async def list_user_orders(self, user_id: str, skip: int = 0, limit: int = 100) -> List[OrderDTO]:
        async with self._uow_factory(readonly=True) as uow:
            orders = await uow.orders.list_by_user(user_id, skip=skip, limit=limit)
        return [OrderDTO.from_entity(o) for o in orders]

    async def get_order(self, user_id: str, order_id: str) -> OrderDTO:
        async with self._uow_factory(readonly=True) as uow:
            order = await uow.orders.get_by_id(order_id)
        if order is None or order.user_id != user_id:
            raise OrderNotFoundException(order_id)
        return OrderDTO.from_entity(order)

    async def cancel_order(self, user_id: str, order_id: str) -> OrderDTO:
        async with self._uow_factory() as uow:
            order = await uow.orders.get_by_id(order_id)
            if order is None or order.user_id != user_id:
                raise OrderNotFoundException(order_id)
            # customers may only cancel before production starts
            if order.status not in (OrderStatus.CREATED, OrderStatus.CONFIRMED):
                raise OrderStatusConflictException(order.status.value, OrderStatus.CANCELLED.value)

            await cancel_and_release(order, uow, self._reservation)

            events = []
            if order.payment_id:
                payments = PaymentDomainService(uow.payments)
                payment = await uow.payments.get_by_id(order.payment_id)
                if payment is not None and payment.status is PaymentStatus.PENDING:
                    if await payments.apply_status(payment, PaymentStatus.FAILED, reason="order_cancelled"):
                        order.mark_payment_failed()
                        await uow.orders.update(order)
                events = payments.collect_events()

        logger.info("order_cancelled", order_id=order.id, user_id=user_id)
        if self._notifier is not None:
            for event in events:
                await notify_safely(self._notifier.payment_event(event), kind=event.name, order_id=order.id)
        return OrderDTO.from_entity(order)
