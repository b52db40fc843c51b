"""Pytest bootstrap configuration.

Ensure mandatory environment variables are set before test collection
and module imports that depend on application settings.
"""
import os

# Mandatory secret key for settings validation
os.environ.setdefault("SECRET_KEY", "test-secret-key")
# the module-level engine is never used by tests; keep it off asyncpg
os.environ.setdefault("DATABASE__URL", "sqlite+aiosqlite:///:memory:")

from functools import partial
from typing import Any, List, Mapping, Optional

import pytest

from application.dtos.payments import CallbackResult, CreatePayment, PaymentIntent, RefundResult
from application.ports.payment_gateway import PaymentGateways
from core.settings import PaymentSettings, UzumSettings
from domain.catalog.entity import Product, Variant
from domain.cart.entity import Cart, CartItem
from domain.order.entity import Order
from domain.payment.entity import PaymentMethod, PaymentStatus
from domain.payment.events import PaymentEvent
from infrastructure.container import build_services
from infrastructure.database import build_engine, build_session_factory, create_tables
from infrastructure.external.payments.exceptions import PaymentSignatureError
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


UZUM_USER = "uzum"
UZUM_PASSWORD = "uzum-secret"


class FakeGateway:
    """In-memory provider adapter; callbacks carry transaction_id/status/amount verbatim."""

    def __init__(self, method: PaymentMethod):
        self.method = method
        self.created: List[CreatePayment] = []
        self.refunds: List[tuple] = []
        self.polled: List[str] = []
        self.next_status = PaymentStatus.PENDING
        self.create_error: Optional[Exception] = None
        self.status_error: Optional[Exception] = None
        self.closed = False

    async def create_payment(self, req: CreatePayment) -> PaymentIntent:
        if self.create_error is not None:
            raise self.create_error
        self.created.append(req)
        return PaymentIntent(
            transaction_id=req.merchant_trans_id,
            payment_url=f"https://pay.example/{self.method.value}/{req.merchant_trans_id}",
        )

    def process_callback(self, payload: Mapping[str, Any], headers: Mapping[str, str]) -> CallbackResult:
        if payload.get("signature") != "ok":
            raise PaymentSignatureError("bad signature", provider=self.method.value)
        return CallbackResult(
            status=PaymentStatus(payload["status"]),
            transaction_id=payload["transaction_id"],
            amount=payload.get("amount"),
            provider_status=payload["status"],
            data=dict(payload.get("data") or {}),
        )

    async def check_status(self, transaction_id: str) -> PaymentStatus:
        self.polled.append(transaction_id)
        if self.status_error is not None:
            raise self.status_error
        return self.next_status

    async def refund(self, transaction_id: str, amount: Optional[int] = None) -> RefundResult:
        self.refunds.append((transaction_id, amount))
        return RefundResult(refund_id=f"rf-{transaction_id}", status=PaymentStatus.REFUNDED)

    async def aclose(self) -> None:
        self.closed = True


class RecordingNotifier:
    def __init__(self, fail: bool = False):
        self.orders: List[Order] = []
        self.events: List[PaymentEvent] = []
        self.fail = fail

    async def order_created(self, order: Order) -> None:
        if self.fail:
            raise RuntimeError("telegram down")
        self.orders.append(order)

    async def payment_event(self, event: PaymentEvent) -> None:
        if self.fail:
            raise RuntimeError("telegram down")
        self.events.append(event)

    async def aclose(self) -> None:
        return None


@pytest.fixture
async def engine(tmp_path):
    eng = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'storefront.db'}")
    await create_tables(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def uow_factory(session_factory):
    return partial(SQLAlchemyUnitOfWork, session_factory)


@pytest.fixture
def gateways():
    return PaymentGateways(
        payme=FakeGateway(PaymentMethod.PAYME),
        click=FakeGateway(PaymentMethod.CLICK),
        uzum=FakeGateway(PaymentMethod.UZUM),
    )


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def pay_settings():
    return PaymentSettings(uzum=UzumSettings(username=UZUM_USER, password=UZUM_PASSWORD))


@pytest.fixture
def services(session_factory, gateways, notifier, pay_settings):
    return build_services(session_factory, pay_settings=pay_settings, gateways=gateways, notifier=notifier)


@pytest.fixture
def seed_product(uow_factory):
    async def _seed(
        product_id: str = "sofa-1",
        *,
        price: int = 1_000_000,
        stock: int = 5,
        sku: str = "SOFA-GREY",
        assembly_price: int = 0,
        extra_variants: Optional[List[Variant]] = None,
    ) -> Product:
        product = Product(
            id=product_id,
            name=f"Product {product_id}",
            assembly_available=assembly_price > 0,
            assembly_price=assembly_price,
            variants=[Variant(sku=sku, price=price, stock=stock, color="grey")] + list(extra_variants or []),
        )
        async with uow_factory() as uow:
            return await uow.products.add(product)

    return _seed


@pytest.fixture
def fill_cart(uow_factory):
    async def _fill(user_id: str, *lines: CartItem) -> Cart:
        async with uow_factory() as uow:
            cart = await uow.carts.get_by_user(user_id) or await uow.carts.add(Cart.for_owner(user_id=user_id))
            for line in lines:
                cart.add_item(line)
            return await uow.carts.save(cart)

    return _fill


@pytest.fixture
def stock_of(uow_factory):
    async def _stock(product_id: str, sku: str) -> int:
        async with uow_factory(readonly=True) as uow:
            product = await uow.products.get_by_id(product_id)
        return product.find_variant(sku, active_only=False).stock

    return _stock
