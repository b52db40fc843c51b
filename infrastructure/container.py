"""
Composition root: builds adapters, notifier and application services once.

The API lifespan and the Celery worker both call `build_services`; nothing
else constructs adapters or services.
"""
from __future__ import annotations

from dataclasses import dataclass
from functools import partial
from typing import Callable, Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from application.ports.notifier import Notifier
from application.ports.payment_gateway import PaymentGateways
from application.services.cart_service import CartService
from application.services.checkout_service import CheckoutService
from application.services.order_service import OrderService
from application.services.payment_service import PaymentService
from application.services.uzum_webhook_service import UzumWebhookService
from core.config import Settings, settings as default_settings
from core.settings import PaymentSettings, payment_settings as default_payment_settings
from domain.order.pricing import PricingPolicy
from infrastructure.external.notifications import build_notifier
from infrastructure.external.payments import UzumClient, build_payment_gateways
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


@dataclass
class Services:
    gateways: PaymentGateways
    notifier: Notifier
    payments: PaymentService
    uzum_webhooks: UzumWebhookService
    checkout: CheckoutService
    orders: OrderService
    carts: CartService

    async def aclose(self) -> None:
        await self.gateways.aclose()
        await self.notifier.aclose()


def build_services(
    session_factory: async_sessionmaker[AsyncSession] | Callable[[], AsyncSession],
    *,
    app_settings: Optional[Settings] = None,
    pay_settings: Optional[PaymentSettings] = None,
    gateways: Optional[PaymentGateways] = None,
    notifier: Optional[Notifier] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> Services:
    cfg = app_settings or default_settings
    pay_cfg = pay_settings or default_payment_settings
    uow_factory = partial(SQLAlchemyUnitOfWork, session_factory)

    gateways = gateways or build_payment_gateways(pay_cfg, http_client=http_client)
    notifier = notifier or build_notifier(cfg.telegram, http_client=http_client)

    payments = PaymentService(
        uow_factory,
        gateways,
        notifier,
        currency=cfg.checkout.currency,
        stale_after_minutes=pay_cfg.reconciliation.stale_after_minutes,
        orphan_ttl_minutes=cfg.checkout.orphan_payment_ttl_minutes,
        reconcile_batch_size=pay_cfg.reconciliation.batch_size,
    )
    uzum = gateways.uzum
    authenticate = (
        uzum.verify_webhook_auth
        if isinstance(uzum, UzumClient)
        else UzumClient(pay_cfg.uzum).verify_webhook_auth
    )
    pricing = PricingPolicy(
        vat_percent=cfg.checkout.vat_percent,
        delivery_fee=cfg.checkout.delivery_fee,
        free_delivery_threshold=cfg.checkout.free_delivery_threshold,
    )
    return Services(
        gateways=gateways,
        notifier=notifier,
        payments=payments,
        uzum_webhooks=UzumWebhookService(uow_factory, authenticate, notifier),
        checkout=CheckoutService(
            uow_factory,
            pricing=pricing,
            currency=cfg.checkout.currency,
            payments=payments,
            notifier=notifier,
        ),
        orders=OrderService(uow_factory, notifier),
        carts=CartService(uow_factory),
    )
