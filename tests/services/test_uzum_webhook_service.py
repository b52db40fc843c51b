import time

import pytest

from application.dtos.checkout import CheckoutRequest
from application.dtos.uzum import UzumCheckRequest, UzumConfirmRequest, UzumCreateRequest, UzumTransRequest
from domain.cart.entity import CartItem
from domain.common.exceptions import (
    InvalidStatusTransitionException,
    PaymentAmountMismatchException,
    ProviderTransactionNotFoundException,
)
from domain.order.entity import OrderPaymentStatus, OrderStatus
from domain.payment.entity import PaymentStatus
from shared.crypto import basic_auth_header


UZUM_USER, UZUM_PASSWORD = "uzum", "uzum-secret"
ADDRESS = {"full_name": "Ali Valiyev", "phone": "+998901234567", "city": "Tashkent", "address": "Amir Temur 1"}


@pytest.fixture
async def uzum_order(services, seed_product, fill_cart):
    await seed_product("p1", price=100_000, stock=5)
    await fill_cart("u1", CartItem("p1", "SOFA-GREY", 1))
    return await services.checkout.checkout(
        "u1",
        CheckoutRequest.model_validate(
            {"payment_method": "uzum", "delivery_address": ADDRESS, "return_url": "https://shop.example/r"}
        ),
    )


def _base(**extra):
    return {"service_id": "101", "timestamp": int(time.time() * 1000), **extra}


def test_webhook_auth(services):
    hooks = services.uzum_webhooks
    assert hooks.verify_auth(basic_auth_header(UZUM_USER, UZUM_PASSWORD), phase="check")
    assert not hooks.verify_auth(basic_auth_header(UZUM_USER, "wrong"), phase="check")
    assert not hooks.verify_auth(None, phase="check")


@pytest.mark.asyncio
async def test_check_reports_amount_in_tiyin(services, uzum_order):
    account = uzum_order.payment.transaction_id
    result = await services.uzum_webhooks.check(UzumCheckRequest(**_base(params={"account": account})))
    assert result == {"status": "OK", "data": {"account": account, "amount": uzum_order.order.grand_total * 100}}


@pytest.mark.asyncio
async def test_full_lifecycle_create_confirm_reverse(services, uzum_order, notifier, stock_of):
    hooks = services.uzum_webhooks
    account = uzum_order.payment.transaction_id
    amount = uzum_order.order.grand_total * 100

    created = await hooks.create(UzumCreateRequest(**_base(params={"account": account}, trans_id="uz-1", amount=amount)))
    assert created["status"] == "CREATED"
    assert created["trans_id"] == "uz-1"
    assert created["data"] == {"account": account}

    replay = await hooks.create(UzumCreateRequest(**_base(params={"account": account}, trans_id="uz-1", amount=amount)))
    assert replay["status"] == "CREATED"

    confirmed = await hooks.confirm(UzumConfirmRequest(**_base(trans_id="uz-1", payment_source="UZCARD")))
    assert confirmed["status"] == "CONFIRMED"
    assert confirmed["data"]["payment_source"] == "UZCARD"
    await hooks.confirm(UzumConfirmRequest(**_base(trans_id="uz-1")))

    order = await services.orders.get_order("u1", uzum_order.order.id)
    assert order.payment_status is OrderPaymentStatus.PAID
    assert [e.name for e in notifier.events] == ["payment_completed"]

    reversed_ = await hooks.reverse(UzumTransRequest(**_base(trans_id="uz-1")))
    assert reversed_["status"] == "REVERSED"

    payment = await services.payments.get_payment(uzum_order.payment.id)
    assert payment.status is PaymentStatus.REFUNDED
    order = await services.orders.get_order("u1", uzum_order.order.id)
    assert order.payment_status is OrderPaymentStatus.REFUNDED
    assert order.status is OrderStatus.CANCELLED
    assert await stock_of("p1", "SOFA-GREY") == 5

    status = await hooks.status(UzumTransRequest(**_base(trans_id="uz-1")))
    assert status["status"] == "REVERSED"
    assert status["confirm_time"] <= status["reverse_time"]


@pytest.mark.asyncio
async def test_reverse_before_confirm_fails_payment(services, uzum_order):
    hooks = services.uzum_webhooks
    account = uzum_order.payment.transaction_id
    amount = uzum_order.order.grand_total * 100
    await hooks.create(UzumCreateRequest(**_base(params={"account": account}, trans_id="uz-2", amount=amount)))

    await hooks.reverse(UzumTransRequest(**_base(trans_id="uz-2")))

    payment = await services.payments.get_payment(uzum_order.payment.id)
    assert payment.status is PaymentStatus.FAILED
    order = await services.orders.get_order("u1", uzum_order.order.id)
    assert order.status is OrderStatus.CANCELLED


@pytest.mark.asyncio
async def test_create_with_wrong_amount(services, uzum_order):
    with pytest.raises(PaymentAmountMismatchException):
        await services.uzum_webhooks.create(
            UzumCreateRequest(
                **_base(params={"account": uzum_order.payment.transaction_id}, trans_id="uz-3", amount=100)
            )
        )


@pytest.mark.asyncio
async def test_unknown_transactions(services):
    with pytest.raises(ProviderTransactionNotFoundException):
        await services.uzum_webhooks.confirm(UzumConfirmRequest(**_base(trans_id="missing")))
    status = await services.uzum_webhooks.status(UzumTransRequest(**_base(trans_id="missing")))
    assert status == {"status": "FAILED", "trans_id": "missing"}


@pytest.mark.asyncio
async def test_confirm_refused_after_order_cancelled(services, uzum_order):
    hooks = services.uzum_webhooks
    account = uzum_order.payment.transaction_id
    amount = uzum_order.order.grand_total * 100
    await hooks.create(UzumCreateRequest(**_base(params={"account": account}, trans_id="uz-4", amount=amount)))
    await services.orders.cancel_order("u1", uzum_order.order.id)

    with pytest.raises(InvalidStatusTransitionException):
        await hooks.confirm(UzumConfirmRequest(**_base(trans_id="uz-4", payment_source="UZCARD")))

    status = await hooks.status(UzumTransRequest(**_base(trans_id="uz-4")))
    assert status["status"] == "CREATED"
    payment = await services.payments.get_payment(uzum_order.payment.id)
    assert payment.status is PaymentStatus.FAILED
    order = await services.orders.get_order("u1", uzum_order.order.id)
    assert order.payment_status is OrderPaymentStatus.FAILED
