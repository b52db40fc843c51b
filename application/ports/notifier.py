"""
Operator notification port.

Implementations must be best-effort from the caller's point of view; the
application wraps every call with `notify_safely` so a failed notification
never undoes committed work.
"""
from __future__ import annotations

from typing import Awaitable, Protocol, runtime_checkable

from core.logging_config import get_logger
from domain.order.entity import Order
from domain.payment.events import PaymentEvent


logger = get_logger(__name__)


@runtime_checkable
class Notifier(Protocol):
    async def order_created(self, order: Order) -> None: ...

    async def payment_event(self, event: PaymentEvent) -> None: ...

    async def aclose(self) -> None: ...


async def notify_safely(call: Awaitable[None], *, kind: str, **context) -> None:
    """Await a notification, logging and dropping any failure."""
    try:
        await call
    except Exception as exc:  # noqa: BLE001
        logger.warning("notification_failed", kind=kind, error=str(exc), **context)
