from decimal import Decimal

import pytest

from domain.cart.entity import CartItem
from domain.catalog.entity import Product, Variant
from domain.common.exceptions import (
    CartEmptyException,
    DomainValidationException,
    InsufficientStockException,
    OrderStatusConflictException,
    ProductUnavailableException,
    VariantNotFoundException,
)
from domain.order.entity import DeliveryAddress, Order, OrderPaymentStatus, OrderStatus, generate_order_number
from domain.order.pricing import PricingPolicy, price_lines


def _product(**overrides) -> Product:
    data = dict(
        id="p1",
        name="Chair",
        assembly_available=True,
        assembly_price=30_000,
        variants=[Variant(sku="CH-RED", price=250_000, stock=3, color="red", size="M")],
    )
    data.update(overrides)
    return Product(**data)


def test_price_lines_freezes_catalog_data_and_totals():
    product = _product()
    quote = price_lines(
        [CartItem(product_id="p1", variant_sku="CH-RED", quantity=2, assembly_selected=True)],
        {"p1": product},
        PricingPolicy(vat_percent=Decimal("12"), delivery_fee=50_000, free_delivery_threshold=10_000_000),
    )
    item = quote.items[0]
    assert item.name == "Chair"
    assert item.unit_price == 250_000
    assert item.variant_color == "red"
    assert item.assembly_unit_price == 30_000
    assert item.line_total == 560_000
    assert quote.subtotal == 500_000
    assert quote.assembly_total == 60_000
    assert quote.vat_amount == 60_000
    assert quote.delivery_price == 50_000
    assert quote.grand_total == 670_000


def test_assembly_fee_ignored_when_product_does_not_offer_it():
    product = _product(assembly_available=False)
    quote = price_lines(
        [CartItem(product_id="p1", variant_sku="CH-RED", quantity=1, assembly_selected=True)],
        {"p1": product},
        PricingPolicy(),
    )
    assert quote.assembly_total == 0


def test_vat_rounds_half_up():
    assert PricingPolicy(vat_percent=Decimal("12")).vat_for(1_004) == 120  # 120.48
    assert PricingPolicy(vat_percent=Decimal("12")).vat_for(1_005) == 121  # 120.6
    assert PricingPolicy(vat_percent=Decimal("10")).vat_for(5) == 1  # 0.5


def test_delivery_is_free_at_threshold():
    policy = PricingPolicy(delivery_fee=50_000, free_delivery_threshold=1_000_000)
    assert policy.delivery_for(999_999) == 50_000
    assert policy.delivery_for(1_000_000) == 0


def test_price_lines_rejects_unavailable_lines():
    product = _product()
    with pytest.raises(ProductUnavailableException):
        price_lines([CartItem("missing", "CH-RED", 1)], {"p1": product}, PricingPolicy())
    with pytest.raises(VariantNotFoundException):
        price_lines([CartItem("p1", "CH-BLUE", 1)], {"p1": product}, PricingPolicy())
    with pytest.raises(InsufficientStockException):
        price_lines([CartItem("p1", "CH-RED", 4)], {"p1": product}, PricingPolicy())
    with pytest.raises(ProductUnavailableException):
        price_lines([CartItem("p1", "CH-RED", 1)], {"p1": _product(is_active=False)}, PricingPolicy())


def test_price_lines_requires_items():
    with pytest.raises(CartEmptyException):
        price_lines([], {}, PricingPolicy())


def _order(**overrides) -> Order:
    product = _product()
    quote = price_lines([CartItem("p1", "CH-RED", 1)], {"p1": product}, PricingPolicy())
    data = dict(
        user_id="u1",
        items=quote.items,
        subtotal=quote.subtotal,
        vat_amount=quote.vat_amount,
        assembly_total=quote.assembly_total,
        delivery_price=quote.delivery_price,
        currency="UZS",
        payment_method="payme",
        delivery_address=DeliveryAddress("Ali Valiyev", "+998901234567", "Tashkent", "Amir Temur 1"),
    )
    data.update(overrides)
    return Order.create(**data)


def test_order_number_format():
    number = generate_order_number(now_ms=1_718_000_123_456)
    prefix, digits, suffix = number.split("-")
    assert prefix == "ORD"
    assert digits == "123456"
    assert 0 <= int(suffix) < 1000


def test_grand_total_must_add_up():
    order = _order()
    assert order.grand_total == order.subtotal + order.vat_amount + order.assembly_total + order.delivery_price
    with pytest.raises(DomainValidationException):
        Order(
            id="x",
            order_number="ORD-1-1",
            user_id="u1",
            items=order.items,
            subtotal=order.subtotal,
            vat_amount=order.vat_amount,
            assembly_total=0,
            delivery_price=0,
            grand_total=1,
            currency="UZS",
            payment_method="payme",
            delivery_address=order.delivery_address,
        )


def test_paid_order_is_confirmed_and_cannot_regress():
    order = _order()
    order.mark_paid()
    assert order.status is OrderStatus.CONFIRMED
    assert order.payment_status is OrderPaymentStatus.PAID
    order.mark_payment_failed()
    assert order.payment_status is OrderPaymentStatus.PAID


def test_cancellation_only_before_shipping():
    order = _order()
    for status in (OrderStatus.CONFIRMED, OrderStatus.IN_PRODUCTION, OrderStatus.READY):
        order.advance(status)
    assert not order.can_cancel()
    with pytest.raises(OrderStatusConflictException):
        order.cancel()


def test_link_payment_once():
    order = _order()
    order.link_payment("pay-1")
    order.link_payment("pay-1")
    with pytest.raises(DomainValidationException):
        order.link_payment("pay-2")
