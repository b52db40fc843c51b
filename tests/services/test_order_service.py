import pytest

from application.dtos.checkout import CheckoutRequest
from domain.cart.entity import CartItem
from domain.common.exceptions import OrderNotFoundException, OrderStatusConflictException
from domain.order.entity import OrderPaymentStatus, OrderStatus
from domain.payment.entity import PaymentStatus


ADDRESS = {"full_name": "Ali Valiyev", "phone": "+998901234567", "city": "Tashkent", "address": "Amir Temur 1"}


@pytest.fixture
async def placed(services, seed_product, fill_cart):
    await seed_product("p1", stock=5)
    await fill_cart("u1", CartItem("p1", "SOFA-GREY", 2))
    return await services.checkout.checkout(
        "u1", CheckoutRequest.model_validate({"payment_method": "click", "delivery_address": ADDRESS})
    )


@pytest.mark.asyncio
async def test_orders_are_private(services, placed):
    assert [o.id for o in await services.orders.list_user_orders("u1")] == [placed.order.id]
    assert await services.orders.list_user_orders("u2") == []
    with pytest.raises(OrderNotFoundException):
        await services.orders.get_order("u2", placed.order.id)


@pytest.mark.asyncio
async def test_cancel_releases_stock_and_fails_pending_payment(services, placed, stock_of, notifier):
    assert await stock_of("p1", "SOFA-GREY") == 3

    order = await services.orders.cancel_order("u1", placed.order.id)

    assert order.status is OrderStatus.CANCELLED
    assert order.payment_status is OrderPaymentStatus.FAILED
    assert await stock_of("p1", "SOFA-GREY") == 5
    payment = await services.payments.get_payment(placed.payment.id)
    assert payment.status is PaymentStatus.FAILED
    assert [e.name for e in notifier.events] == ["payment_failed"]


@pytest.mark.asyncio
async def test_cancel_twice_conflicts(services, placed, stock_of):
    await services.orders.cancel_order("u1", placed.order.id)
    with pytest.raises(OrderStatusConflictException):
        await services.orders.cancel_order("u1", placed.order.id)
    assert await stock_of("p1", "SOFA-GREY") == 5


@pytest.mark.asyncio
async def test_cancel_order_of_someone_else(services, placed):
    with pytest.raises(OrderNotFoundException):
        await services.orders.cancel_order("u2", placed.order.id)
