"""
Order aggregate: an immutable snapshot of what was bought and at what price.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Optional
import secrets
import time
import uuid

from domain.common.exceptions import DomainValidationException, OrderStatusConflictException


class OrderStatus(str, Enum):
    """Fulfillment status, independent of payment."""
    CREATED = "created"
    CONFIRMED = "confirmed"
    IN_PRODUCTION = "in_production"
    READY = "ready"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class OrderPaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


FULFILLMENT_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.CREATED: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.IN_PRODUCTION, OrderStatus.CANCELLED}),
    OrderStatus.IN_PRODUCTION: frozenset({OrderStatus.READY, OrderStatus.CANCELLED}),
    OrderStatus.READY: frozenset({OrderStatus.SHIPPED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}


def generate_order_number(now_ms: Optional[int] = None) -> str:
    """ORD-<last 6 digits of epoch ms>-<0..999>"""
    ms = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"ORD-{str(ms)[-6:]}-{secrets.randbelow(1000)}"


@dataclass(frozen=True)
class DeliveryAddress:
    full_name: str
    phone: str
    city: str
    address: str

    def to_dict(self) -> dict[str, str]:
        return {"full_name": self.full_name, "phone": self.phone, "city": self.city, "address": self.address}


@dataclass(frozen=True)
class OrderItem:
    """Catalog data frozen at purchase time."""
    product_id: str
    name: str
    unit_price: int
    variant_sku: str
    quantity: int
    variant_color: Optional[str] = None
    variant_size: Optional[str] = None
    assembly_selected: bool = False
    assembly_unit_price: int = 0

    @property
    def line_total(self) -> int:
        return (self.unit_price + self.assembly_unit_price) * self.quantity

    @property
    def variant_snapshot(self) -> dict[str, Any]:
        return {"sku": self.variant_sku, "color": self.variant_color, "size": self.variant_size}


@dataclass
class Order:
    id: str
    order_number: str
    user_id: str
    items: List[OrderItem]
    subtotal: int
    vat_amount: int
    assembly_total: int
    delivery_price: int
    grand_total: int
    currency: str
    payment_method: str
    delivery_address: DeliveryAddress
    payment_status: OrderPaymentStatus = OrderPaymentStatus.PENDING
    status: OrderStatus = OrderStatus.CREATED
    payment_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        self.status = OrderStatus(self.status)
        self.payment_status = OrderPaymentStatus(self.payment_status)
        if not self.items:
            raise DomainValidationException("Order must contain items", field="items")
        expected = self.subtotal + self.vat_amount + self.assembly_total + self.delivery_price
        if self.grand_total != expected:
            raise DomainValidationException(
                "grand_total must equal subtotal + vat + assembly + delivery",
                field="grand_total",
                details={"grand_total": self.grand_total, "expected": expected},
            )

    @classmethod
    def create(
        cls,
        *,
        user_id: str,
        items: List[OrderItem],
        subtotal: int,
        vat_amount: int,
        assembly_total: int,
        delivery_price: int,
        currency: str,
        payment_method: str,
        delivery_address: DeliveryAddress,
    ) -> "Order":
        """Build a new order, deriving id, order number and grand total."""
        now = datetime.now(timezone.utc)
        return cls(
            id=str(uuid.uuid4()),
            order_number=generate_order_number(),
            user_id=user_id,
            items=list(items),
            subtotal=subtotal,
            vat_amount=vat_amount,
            assembly_total=assembly_total,
            delivery_price=delivery_price,
            grand_total=subtotal + vat_amount + assembly_total + delivery_price,
            currency=currency,
            payment_method=payment_method,
            delivery_address=delivery_address,
            created_at=now,
            updated_at=now,
        )

    def _touch(self) -> None:
        self.updated_at = datetime.now(timezone.utc)

    def link_payment(self, payment_id: str) -> None:
        if self.payment_id and self.payment_id != payment_id:
            raise DomainValidationException("Order already linked to a payment", field="payment_id")
        self.payment_id = payment_id
        self._touch()

    @property
    def awaiting_payment(self) -> bool:
        return self.status is not OrderStatus.CANCELLED and self.payment_status in (
            OrderPaymentStatus.PENDING,
            OrderPaymentStatus.FAILED,
        )

    def replace_payment(self, payment_id: str, payment_method: str) -> None:
        """Point the order at a new payment attempt after the previous one was given up."""
        if not self.awaiting_payment:
            raise DomainValidationException(
                "Order is not awaiting payment",
                field="order_id",
                details={"status": self.status.value, "payment_status": self.payment_status.value},
            )
        self.payment_id = payment_id
        self.payment_method = payment_method
        self.payment_status = OrderPaymentStatus.PENDING
        self._touch()

    def advance(self, target: OrderStatus) -> None:
        target = OrderStatus(target)
        if target not in FULFILLMENT_TRANSITIONS[self.status]:
            raise OrderStatusConflictException(self.status.value, target.value)
        self.status = target
        self._touch()

    def can_cancel(self) -> bool:
        return OrderStatus.CANCELLED in FULFILLMENT_TRANSITIONS[self.status]

    def cancel(self) -> None:
        self.advance(OrderStatus.CANCELLED)

    def mark_paid(self) -> None:
        """Payment completed: record it and confirm a freshly created order."""
        self.payment_status = OrderPaymentStatus.PAID
        if self.status is OrderStatus.CREATED:
            self.status = OrderStatus.CONFIRMED
        self._touch()

    def mark_payment_failed(self) -> None:
        if self.payment_status is OrderPaymentStatus.PENDING:
            self.payment_status = OrderPaymentStatus.FAILED
            self._touch()

    def mark_refunded(self) -> None:
        self.payment_status = OrderPaymentStatus.REFUNDED
        self._touch()
