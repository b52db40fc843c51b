import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from application.dtos.checkout import CheckoutRequest
from application.dtos.payments import CreatePaymentRequest
from domain.cart.entity import CartItem
from domain.common.exceptions import (
    DomainValidationException,
    ForbiddenException,
    OrderNotFoundException,
    PaymentAmountMismatchException,
    PaymentNotFoundException,
    PaymentNotRefundableException,
)
from domain.order.entity import OrderPaymentStatus, OrderStatus
from domain.payment.entity import PaymentMethod, PaymentStatus
from domain.payment.service import PaymentDomainService
from infrastructure.external.payments.exceptions import PaymentProviderError, PaymentSignatureError


ADDRESS = {"full_name": "Ali Valiyev", "phone": "+998901234567", "city": "Tashkent", "address": "Amir Temur 1"}


async def _checkout(services, seed_product, fill_cart, *, method="payme", dispatch=True):
    await seed_product("p1", price=100_000, stock=5)
    await fill_cart("u1", CartItem("p1", "SOFA-GREY", 1))
    req = {"payment_method": method, "delivery_address": ADDRESS}
    if dispatch:
        req["return_url"] = "https://shop.example/thanks"
    return await services.checkout.checkout("u1", CheckoutRequest.model_validate(req))


def _callback(txn, status, amount, **extra):
    return {"transaction_id": txn, "status": status, "amount": amount, "signature": "ok", **extra}


@pytest.mark.asyncio
async def test_create_payment_replaces_undispatched_checkout_payment(services, seed_product, fill_cart, gateways):
    placed = await _checkout(services, seed_product, fill_cart, dispatch=False)

    intent = await services.payments.create_payment(
        "u1",
        CreatePaymentRequest(
            amount=placed.order.grand_total,
            order_id=placed.order.id,
            method=PaymentMethod.CLICK,
            return_url="https://shop.example/r",
        ),
    )

    payment = await services.payments.get_payment(intent.payment_id, user_id="u1")
    assert payment.status is PaymentStatus.PENDING
    assert payment.transaction_id == intent.transaction_id
    assert payment.amount == placed.order.grand_total
    assert gateways.click.created[0].merchant_trans_id == intent.transaction_id
    superseded = await services.payments.get_payment(placed.payment.id)
    assert superseded.status is PaymentStatus.FAILED
    order = await services.orders.get_order("u1", placed.order.id)
    assert order.payment_id == intent.payment_id
    assert order.payment_method == "click"
    assert order.payment_status is OrderPaymentStatus.PENDING


@pytest.mark.asyncio
async def test_create_payment_checks_order_owner_and_total(services, seed_product, fill_cart):
    placed = await _checkout(services, seed_product, fill_cart, dispatch=False)

    def _req(amount, order_id=placed.order.id):
        return CreatePaymentRequest(
            amount=amount, order_id=order_id, method=PaymentMethod.PAYME, return_url="https://shop.example/r"
        )

    with pytest.raises(PaymentAmountMismatchException):
        await services.payments.create_payment("u1", _req(1))
    with pytest.raises(OrderNotFoundException):
        await services.payments.create_payment("u2", _req(placed.order.grand_total))
    with pytest.raises(OrderNotFoundException):
        await services.payments.create_payment("u1", _req(1, order_id="missing"))
    assert await services.payments.list_user_payments("u2") == []


@pytest.mark.asyncio
async def test_create_payment_refused_while_attempt_in_flight(services, seed_product, fill_cart):
    placed = await _checkout(services, seed_product, fill_cart)

    with pytest.raises(DomainValidationException):
        await services.payments.create_payment(
            "u1",
            CreatePaymentRequest(
                amount=placed.order.grand_total,
                order_id=placed.order.id,
                method=PaymentMethod.CLICK,
                return_url="https://shop.example/r",
            ),
        )


@pytest.mark.asyncio
async def test_unlinked_payment_never_marks_order_paid(services, seed_product, fill_cart, uow_factory):
    placed = await _checkout(services, seed_product, fill_cart)
    async with uow_factory() as uow:
        stray = await PaymentDomainService(uow.payments).open_payment(
            user_id="u1", order_id=placed.order.id, amount=1, currency="UZS", method=PaymentMethod.PAYME
        )
        await PaymentDomainService(uow.payments).attach_transaction(stray, "stray-txn")

    result = await services.payments.handle_callback("payme", _callback("stray-txn", "completed", 1))

    assert result.applied is True
    order = await services.orders.get_order("u1", placed.order.id)
    assert order.payment_id == placed.payment.id
    assert order.payment_status is OrderPaymentStatus.PENDING
    assert order.status is OrderStatus.CREATED


@pytest.mark.asyncio
async def test_completed_callback_applies_once(services, seed_product, fill_cart, notifier):
    result = await _checkout(services, seed_product, fill_cart)
    txn = result.payment.transaction_id
    amount = result.order.grand_total

    first = await services.payments.handle_callback("payme", _callback(txn, "completed", amount))
    second = await services.payments.handle_callback("payme", _callback(txn, "completed", amount))

    assert first.applied is True
    assert second.applied is False
    assert second.payment_status is PaymentStatus.COMPLETED
    assert [e.name for e in notifier.events] == ["payment_completed"]

    order = await services.orders.get_order("u1", result.order.id)
    assert order.payment_status is OrderPaymentStatus.PAID
    assert order.status is OrderStatus.CONFIRMED
    payment = await services.payments.get_payment(result.payment.id)
    assert payment.completed_at is not None


@pytest.mark.asyncio
async def test_concurrent_duplicate_callbacks_complete_once(services, seed_product, fill_cart, notifier):
    result = await _checkout(services, seed_product, fill_cart)
    payload = _callback(result.payment.transaction_id, "completed", result.order.grand_total)

    outcomes = await asyncio.gather(
        services.payments.handle_callback("payme", dict(payload)),
        services.payments.handle_callback("payme", dict(payload)),
    )

    assert sorted(o.applied for o in outcomes) == [False, True]
    assert [e.name for e in notifier.events] == ["payment_completed"]
    order = await services.orders.get_order("u1", result.order.id)
    assert order.payment_status is OrderPaymentStatus.PAID


@pytest.mark.asyncio
async def test_late_pending_does_not_resurrect_failed_payment(services, seed_product, fill_cart):
    result = await _checkout(services, seed_product, fill_cart, method="click")
    txn = result.payment.transaction_id
    amount = result.order.grand_total

    await services.payments.handle_callback("click", _callback(txn, "failed", amount))
    late = await services.payments.handle_callback("click", _callback(txn, "pending", amount))

    assert late.applied is False
    assert late.payment_status is PaymentStatus.FAILED
    order = await services.orders.get_order("u1", result.order.id)
    assert order.payment_status is OrderPaymentStatus.FAILED


@pytest.mark.asyncio
async def test_amount_mismatch_leaves_payment_untouched(services, seed_product, fill_cart):
    result = await _checkout(services, seed_product, fill_cart)
    txn = result.payment.transaction_id

    with pytest.raises(PaymentAmountMismatchException):
        await services.payments.handle_callback("payme", _callback(txn, "completed", 1))

    payment = await services.payments.get_payment(result.payment.id)
    assert payment.status is PaymentStatus.PENDING


@pytest.mark.asyncio
async def test_callback_for_other_method_is_not_found(services, seed_product, fill_cart):
    result = await _checkout(services, seed_product, fill_cart)
    with pytest.raises(PaymentNotFoundException):
        await services.payments.handle_callback(
            "click", _callback(result.payment.transaction_id, "completed", result.order.grand_total)
        )


@pytest.mark.asyncio
async def test_bad_signature_is_rejected(services):
    with pytest.raises(PaymentSignatureError):
        await services.payments.handle_callback("payme", {"transaction_id": "x", "status": "completed", "signature": "no"})


@pytest.mark.asyncio
async def test_refund_flow(services, seed_product, fill_cart, gateways, notifier, uow_factory):
    result = await _checkout(services, seed_product, fill_cart)
    txn = result.payment.transaction_id
    amount = result.order.grand_total

    with pytest.raises(PaymentNotRefundableException):
        await services.payments.refund_payment(result.payment.id, "u1")

    await services.payments.handle_callback("payme", _callback(txn, "completed", amount))
    with pytest.raises(ForbiddenException):
        await services.payments.refund_payment(result.payment.id, "someone-else")

    refund = await services.payments.refund_payment(result.payment.id, "u1")

    assert refund.status is PaymentStatus.REFUNDED
    assert gateways.payme.refunds == [(txn, amount)]
    payment = await services.payments.get_payment(result.payment.id)
    assert payment.status is PaymentStatus.REFUNDED
    order = await services.orders.get_order("u1", result.order.id)
    assert order.payment_status is OrderPaymentStatus.REFUNDED
    assert [e.name for e in notifier.events] == ["payment_completed", "payment_refunded"]
    async with uow_factory(readonly=True) as uow:
        stored = await uow.payments.get_by_id(result.payment.id)
    assert stored.provider_data["refund_id"] == f"rf-{txn}"


@pytest.mark.asyncio
async def test_check_status_applies_provider_answer(services, seed_product, fill_cart, gateways):
    result = await _checkout(services, seed_product, fill_cart, method="uzum")
    gateways.uzum.next_status = PaymentStatus.COMPLETED

    status = await services.payments.check_status("uzum", result.payment.transaction_id)

    assert status is PaymentStatus.COMPLETED
    payment = await services.payments.get_payment(result.payment.id)
    assert payment.status is PaymentStatus.COMPLETED


@pytest.mark.asyncio
async def test_check_status_of_unknown_transaction_only_reports(services, gateways):
    gateways.click.next_status = PaymentStatus.FAILED
    assert await services.payments.check_status("click", "TXN-unknown") is PaymentStatus.FAILED


@pytest.mark.asyncio
async def test_reconcile_polls_stale_and_fails_orphans(services, seed_product, fill_cart, gateways, stock_of):
    dispatched = await _checkout(services, seed_product, fill_cart)
    await fill_cart("u1", CartItem("p1", "SOFA-GREY", 2))
    orphan = await services.checkout.checkout(
        "u1", CheckoutRequest.model_validate({"payment_method": "click", "delivery_address": ADDRESS})
    )
    assert await stock_of("p1", "SOFA-GREY") == 2
    gateways.payme.next_status = PaymentStatus.COMPLETED

    report = await services.payments.reconcile_pending(now=datetime.now(timezone.utc) + timedelta(days=2))

    assert (report.checked, report.applied, report.errors, report.orphans_failed) == (1, 1, 0, 1)
    assert gateways.payme.polled == [dispatched.payment.transaction_id]
    paid = await services.orders.get_order("u1", dispatched.order.id)
    assert paid.payment_status is OrderPaymentStatus.PAID
    cancelled = await services.orders.get_order("u1", orphan.order.id)
    assert cancelled.status is OrderStatus.CANCELLED
    assert cancelled.payment_status is OrderPaymentStatus.FAILED
    assert await stock_of("p1", "SOFA-GREY") == 4


@pytest.mark.asyncio
async def test_reconcile_continues_past_provider_errors(services, seed_product, fill_cart, gateways):
    dispatched = await _checkout(services, seed_product, fill_cart)
    await fill_cart("u1", CartItem("p1", "SOFA-GREY", 1))
    broken = await services.checkout.checkout(
        "u1",
        CheckoutRequest.model_validate(
            {"payment_method": "click", "delivery_address": ADDRESS, "return_url": "https://shop.example/thanks"}
        ),
    )
    gateways.click.status_error = PaymentProviderError("click check_status returned a non-numeric error code", provider="click")
    gateways.payme.next_status = PaymentStatus.COMPLETED

    report = await services.payments.reconcile_pending(now=datetime.now(timezone.utc) + timedelta(days=2))

    assert (report.checked, report.applied, report.errors) == (2, 1, 1)
    paid = await services.orders.get_order("u1", dispatched.order.id)
    assert paid.payment_status is OrderPaymentStatus.PAID
    untouched = await services.payments.get_payment(broken.payment.id)
    assert untouched.status is PaymentStatus.PENDING


@pytest.mark.asyncio
async def test_reconcile_ignores_fresh_payments(services, seed_product, fill_cart, gateways):
    await _checkout(services, seed_product, fill_cart)
    report = await services.payments.reconcile_pending()
    assert report.checked == 0
    assert gateways.payme.polled == []
