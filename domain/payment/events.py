"""
Payment domain events.

Dataclass events record payment lifecycle facts for downstream handling
(order finalization, notifications). Domain remains free of infrastructure imports.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional
import uuid


@dataclass
class PaymentEvent:
    payment_id: str
    order_id: str
    method: str
    amount: int
    transaction_id: Optional[str] = None
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def name(self) -> str:
        return _EVENT_NAMES[type(self)]


@dataclass
class PaymentProcessing(PaymentEvent):
    pass


@dataclass
class PaymentCompleted(PaymentEvent):
    pass


@dataclass
class PaymentFailed(PaymentEvent):
    reason: Optional[str] = None


@dataclass
class PaymentRefunded(PaymentEvent):
    refund_id: str = ""


_EVENT_NAMES = {
    PaymentProcessing: "payment_processing",
    PaymentCompleted: "payment_completed",
    PaymentFailed: "payment_failed",
    PaymentRefunded: "payment_refunded",
}
