import json

import httpx
import pytest

from core.config import TelegramSettings
from domain.order.entity import DeliveryAddress, Order, OrderItem
from domain.payment.events import PaymentCompleted
from infrastructure.external.notifications import LoggingNotifier, TelegramNotifier, build_notifier
from infrastructure.external.notifications.telegram import format_order_created, format_payment_event


def _order() -> Order:
    return Order.create(
        user_id="u1",
        items=[OrderItem(product_id="p1", name="Sofa", unit_price=1_000_000, variant_sku="SOFA-GREY", quantity=2)],
        subtotal=2_000_000,
        vat_amount=240_000,
        assembly_total=0,
        delivery_price=0,
        currency="UZS",
        payment_method="click",
        delivery_address=DeliveryAddress("Ali Valiyev", "+998901234567", "Tashkent", "Amir Temur 1"),
    )


def test_order_message_lists_lines_and_total():
    text = format_order_created(_order())
    assert "- Sofa [SOFA-GREY] x2: 2,000,000 UZS" in text
    assert "Total: 2,240,000 UZS via click" in text
    assert "Ali Valiyev (+998901234567)" in text


def test_payment_event_message():
    event = PaymentCompleted(payment_id="pay-1", order_id="o-1", method="payme", amount=150_000, transaction_id="t-9")
    text = format_payment_event(event)
    assert text.startswith("Payment completed\n")
    assert "150,000 via payme" in text
    assert "Transaction: t-9" in text


def test_build_notifier_needs_full_telegram_config():
    assert isinstance(build_notifier(TelegramSettings()), LoggingNotifier)
    assert isinstance(build_notifier(TelegramSettings(enabled=True, bot_token="t")), LoggingNotifier)
    cfg = TelegramSettings(enabled=True, bot_token="t", chat_id="42")
    assert isinstance(build_notifier(cfg), TelegramNotifier)


@pytest.mark.asyncio
async def test_telegram_posts_to_bot_api():
    sent = []

    def handler(request: httpx.Request) -> httpx.Response:
        sent.append((request.url.path, json.loads(request.content)))
        return httpx.Response(200, json={"ok": True})

    cfg = TelegramSettings(enabled=True, bot_token="abc", chat_id="42")
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        notifier = TelegramNotifier(cfg, http_client=client)
        await notifier.order_created(_order())
        await notifier.aclose()
        assert not client.is_closed

    path, body = sent[0]
    assert path == "/botabc/sendMessage"
    assert body["chat_id"] == "42"
    assert "New order ORD-" in body["text"]


@pytest.mark.asyncio
async def test_telegram_http_error_raises():
    cfg = TelegramSettings(enabled=True, bot_token="abc", chat_id="42")
    transport = httpx.MockTransport(lambda request: httpx.Response(403, json={"ok": False}))
    async with httpx.AsyncClient(transport=transport) as client:
        with pytest.raises(httpx.HTTPStatusError):
            await TelegramNotifier(cfg, http_client=client).send("hi")
