"""
Operator notifications: Telegram Bot API over httpx, or structured logs only.
"""
from __future__ import annotations

from typing import Optional

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from core.config import TelegramSettings
from core.logging_config import get_logger
from domain.order.entity import Order
from domain.payment.events import PaymentEvent


logger = get_logger(__name__)


def format_order_created(order: Order) -> str:
    lines = [
        f"New order {order.order_number}",
        f"Customer: {order.delivery_address.full_name} ({order.delivery_address.phone})",
        f"Address: {order.delivery_address.city}, {order.delivery_address.address}",
        "",
    ]
    for item in order.items:
        variant = f" [{item.variant_sku}]" if item.variant_sku else ""
        lines.append(f"- {item.name}{variant} x{item.quantity}: {item.line_total:,} {order.currency}")
    lines.append("")
    lines.append(f"Total: {order.grand_total:,} {order.currency} via {order.payment_method}")
    return "\n".join(lines)


def format_payment_event(event: PaymentEvent) -> str:
    return (
        f"{event.name.replace('_', ' ').capitalize()}\n"
        f"Order: {event.order_id}\n"
        f"Amount: {event.amount:,} via {getattr(event.method, 'value', event.method)}\n"
        f"Transaction: {event.transaction_id or '-'}"
    )


class TelegramNotifier:
    def __init__(self, cfg: TelegramSettings, *, http_client: Optional[httpx.AsyncClient] = None) -> None:
        self._cfg = cfg
        self._client = http_client
        self._owns_client = http_client is None

    async def _client_or_new(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self._cfg.timeout))
        return self._client

    async def send(self, text: str) -> None:
        client = await self._client_or_new()
        url = f"{self._cfg.api_url.rstrip('/')}/bot{self._cfg.bot_token}/sendMessage"
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(3),
            wait=wait_exponential(multiplier=0.2, max=2.0),
            retry=retry_if_exception_type((httpx.TimeoutException, httpx.TransportError)),
            reraise=True,
        ):
            with attempt:
                response = await client.post(url, json={"chat_id": self._cfg.chat_id, "text": text})
        response.raise_for_status()
        logger.info("telegram_message_sent", chat_id=self._cfg.chat_id)

    async def order_created(self, order: Order) -> None:
        await self.send(format_order_created(order))

    async def payment_event(self, event: PaymentEvent) -> None:
        await self.send(format_payment_event(event))

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None


class LoggingNotifier:
    """Used when no Telegram bot is configured."""

    async def order_created(self, order: Order) -> None:
        logger.info("order_created_notification", order_id=order.id, order_number=order.order_number)

    async def payment_event(self, event: PaymentEvent) -> None:
        logger.info("payment_event_notification", event_name=event.name, payment_id=event.payment_id)

    async def aclose(self) -> None:
        return None
