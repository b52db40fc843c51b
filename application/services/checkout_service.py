"""
Checkout coordinator.

One unit of work covers the whole saga: load cart, price lines, reserve stock,
write the order snapshot and its pending payment, link them and clear the cart.
Any failure rolls all of it back. Notification and the optional provider
dispatch run only after the commit.
"""
from __future__ import annotations

from typing import Callable, Optional

from application.dtos.checkout import CheckoutRequest, CheckoutResultDTO, OrderDTO
from application.dtos.payments import PaymentDTO
from application.ports.notifier import Notifier, notify_safely
from application.services.cart_service import resolve_cart
from application.services.payment_service import PaymentService
from core.logging_config import get_logger
from domain.catalog.service import StockReservationService
from domain.common.exceptions import BusinessException, CartEmptyException, DomainValidationException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import Order
from domain.order.pricing import PricingPolicy, price_lines
from domain.payment.service import PaymentDomainService


logger = get_logger(__name__)


class CheckoutService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        *,
        pricing: Optional[PricingPolicy] = None,
        currency: str = "UZS",
        payments: Optional[PaymentService] = None,
        notifier: Optional[Notifier] = None,
    ) -> None:
        self._uow_factory = uow_factory
        self._pricing = pricing or PricingPolicy()
        self._currency = currency
        self._payments = payments
        self._notifier = notifier
        self._reservation = StockReservationService()

    async def checkout(self, user_id: str, req: CheckoutRequest) -> CheckoutResultDTO:
        if not user_id:
            raise DomainValidationException("Checkout requires an authenticated user", field="user_id")

        logger.info("checkout_started", user_id=user_id, method=req.payment_method.value)
        async with self._uow_factory() as uow:
            cart = await resolve_cart(uow, user_id=user_id)
            if cart.is_empty:
                raise CartEmptyException(cart.id)

            products = await uow.products.get_many({line.product_id for line in cart.items})
            quote = price_lines(cart.items, {p.id: p for p in products}, self._pricing)

            await self._reservation.reserve_stock(cart.items, uow)

            order = Order.create(
                user_id=user_id,
                items=quote.items,
                subtotal=quote.subtotal,
                vat_amount=quote.vat_amount,
                assembly_total=quote.assembly_total,
                delivery_price=quote.delivery_price,
                currency=self._currency,
                payment_method=req.payment_method.value,
                delivery_address=req.delivery_address.to_domain(),
            )
            await uow.orders.add(order)

            payment = await PaymentDomainService(uow.payments).open_payment(
                user_id=user_id,
                order_id=order.id,
                amount=order.grand_total,
                currency=order.currency,
                method=req.payment_method,
            )
            order.link_payment(payment.id)
            await uow.orders.update(order)

            cart.clear()
            await uow.carts.save(cart)

        logger.info(
            "checkout_completed",
            user_id=user_id,
            order_id=order.id,
            order_number=order.order_number,
            payment_id=payment.id,
            grand_total=order.grand_total,
        )
        if self._notifier is not None:
            await notify_safely(self._notifier.order_created(order), kind="order_created", order_id=order.id)

        payment_url = None
        if req.return_url is not None and self._payments is not None:
            try:
                intent = await self._payments.start_payment(
                    payment.id,
                    return_url=str(req.return_url),
                    description=req.description or f"Order {order.order_number}",
                    phone=req.delivery_address.phone,
                )
            except BusinessException as exc:
                logger.warning(
                    "checkout_payment_dispatch_failed",
                    order_id=order.id,
                    payment_id=payment.id,
                    code=int(exc.code),
                    error=exc.message,
                )
            else:
                payment_url = intent.payment_url
                payment.assign_transaction_id(intent.transaction_id)

        return CheckoutResultDTO(
            order=OrderDTO.from_entity(order),
            payment=PaymentDTO.from_entity(payment),
            payment_url=payment_url,
        )
