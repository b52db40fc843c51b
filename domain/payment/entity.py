"""
Payment domain entities: the Payment aggregate and the provider transaction record.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
import uuid

from domain.common.exceptions import (
    DomainValidationException,
    InvalidStatusTransitionException,
    PaymentNotRefundableException,
)


class PaymentMethod(str, Enum):
    """Supported payment networks (closed set)."""
    PAYME = "payme"   # JSON-RPC 2.0
    CLICK = "click"   # REST with signed query
    UZUM = "uzum"     # webhook driven, Basic-Auth


class PaymentStatus(str, Enum):
    """Canonical payment status."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


ALLOWED_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.PROCESSING, PaymentStatus.COMPLETED, PaymentStatus.FAILED}),
    PaymentStatus.PROCESSING: frozenset({PaymentStatus.COMPLETED, PaymentStatus.FAILED}),
    PaymentStatus.COMPLETED: frozenset({PaymentStatus.REFUNDED}),
    PaymentStatus.FAILED: frozenset(),
    PaymentStatus.REFUNDED: frozenset(),
}


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


@dataclass
class Payment:
    """
    Payment aggregate: one attempt to move money for one order.

    Rules:
    1. amount is a non-negative integer in the currency's accounting unit
    2. status follows ALLOWED_TRANSITIONS; failed and refunded are final
    3. transaction_id, once assigned, never changes
    4. completed_at is set only when the payment completes
    """

    id: str
    user_id: str
    order_id: str
    amount: int
    currency: str
    method: PaymentMethod
    status: PaymentStatus = PaymentStatus.PENDING
    transaction_id: Optional[str] = None
    provider_data: dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def __post_init__(self):
        if isinstance(self.amount, bool) or not isinstance(self.amount, int) or self.amount < 0:
            raise DomainValidationException(f"Invalid payment amount: {self.amount}", field="amount")
        if not self.currency or len(self.currency) != 3 or not self.currency.isalpha():
            raise DomainValidationException(f"Invalid currency code: {self.currency}", field="currency")
        self.method = PaymentMethod(self.method)
        self.status = PaymentStatus(self.status)
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)
        self.completed_at = _ensure_utc(self.completed_at)
        if self.provider_data is None:
            self.provider_data = {}

    @classmethod
    def open(
        cls,
        *,
        user_id: str,
        order_id: str,
        amount: int,
        currency: str,
        method: PaymentMethod | str,
    ) -> "Payment":
        """Create a new pending payment with a fresh opaque id."""
        if not order_id:
            raise DomainValidationException("order_id is required", field="order_id")
        now = datetime.now(timezone.utc)
        return cls(
            id=new_id(),
            user_id=user_id,
            order_id=order_id,
            amount=amount,
            currency=currency,
            method=PaymentMethod(method),
            status=PaymentStatus.PENDING,
            created_at=now,
            updated_at=now,
        )

    def is_final(self) -> bool:
        return not ALLOWED_TRANSITIONS[self.status]

    def can_transition(self, target: PaymentStatus) -> bool:
        return PaymentStatus(target) in ALLOWED_TRANSITIONS[self.status]

    def transition_to(self, target: PaymentStatus, *, at: Optional[datetime] = None) -> None:
        target = PaymentStatus(target)
        if not self.can_transition(target):
            raise InvalidStatusTransitionException(self.status.value, target.value)
        now = _ensure_utc(at) or datetime.now(timezone.utc)
        self.status = target
        self.updated_at = now
        if target is PaymentStatus.COMPLETED:
            self.completed_at = now

    def assign_transaction_id(self, transaction_id: str) -> None:
        if not transaction_id:
            raise DomainValidationException("transaction_id is required", field="transaction_id")
        if self.transaction_id and self.transaction_id != transaction_id:
            raise DomainValidationException(
                "transaction_id is already assigned",
                field="transaction_id",
                details={"payment_id": self.id},
            )
        self.transaction_id = transaction_id
        self.updated_at = datetime.now(timezone.utc)

    def ensure_refundable(self) -> None:
        if self.status is not PaymentStatus.COMPLETED:
            raise PaymentNotRefundableException(self.id, self.status.value)
        if not self.transaction_id:
            raise PaymentNotRefundableException(
                self.id, self.status.value, reason="Payment has no provider transaction"
            )


class ProviderTransactionStatus(str, Enum):
    PENDING = "PENDING"
    CREATED = "CREATED"
    CONFIRMED = "CONFIRMED"
    REVERSED = "REVERSED"
    FAILED = "FAILED"


def _epoch_ms(dt: datetime) -> int:
    return int(dt.timestamp() * 1000)


@dataclass
class ProviderTransaction:
    """
    Lifecycle of a webhook-driven provider's own transaction (create → confirm → reverse).

    `transaction_id` is the provider's id; `account` is the merchant transaction id
    that links back to Payment.transaction_id.
    """

    id: str
    transaction_id: str
    service_id: str
    account: str
    amount: int
    status: ProviderTransactionStatus
    payment_id: Optional[str] = None
    trans_time: Optional[datetime] = None
    confirm_time: Optional[datetime] = None
    reverse_time: Optional[datetime] = None
    payment_source: Optional[str] = None
    phone: Optional[str] = None
    card_type: Optional[str] = None
    processing_reference_number: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        self.status = ProviderTransactionStatus(self.status)
        self.trans_time = _ensure_utc(self.trans_time)
        self.confirm_time = _ensure_utc(self.confirm_time)
        self.reverse_time = _ensure_utc(self.reverse_time)
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)

    @classmethod
    def record(
        cls,
        *,
        transaction_id: str,
        service_id: str,
        account: str,
        amount: int,
        payment_id: Optional[str],
        status: ProviderTransactionStatus = ProviderTransactionStatus.CREATED,
    ) -> "ProviderTransaction":
        now = datetime.now(timezone.utc)
        return cls(
            id=new_id(),
            transaction_id=transaction_id,
            service_id=service_id,
            account=account,
            amount=amount,
            status=status,
            payment_id=payment_id,
            trans_time=now,
            created_at=now,
            updated_at=now,
        )

    def mark_created(self, transaction_id: str) -> None:
        if self.status is not ProviderTransactionStatus.PENDING:
            raise DomainValidationException(
                f"Cannot create transaction in status {self.status.value}", field="status"
            )
        now = datetime.now(timezone.utc)
        self.transaction_id = transaction_id
        self.status = ProviderTransactionStatus.CREATED
        self.trans_time = now
        self.updated_at = now

    def confirm(self, *, payment_source: Optional[str] = None, phone: Optional[str] = None) -> bool:
        """Returns False when already confirmed."""
        if self.status is ProviderTransactionStatus.CONFIRMED:
            return False
        if self.status is not ProviderTransactionStatus.CREATED:
            raise DomainValidationException(
                f"Cannot confirm transaction in status {self.status.value}", field="status"
            )
        now = datetime.now(timezone.utc)
        self.status = ProviderTransactionStatus.CONFIRMED
        self.confirm_time = now
        self.payment_source = payment_source or self.payment_source
        self.phone = phone or self.phone
        self.updated_at = now
        return True

    def reverse(self) -> bool:
        """Returns False when already reversed."""
        if self.status is ProviderTransactionStatus.REVERSED:
            return False
        if self.status is ProviderTransactionStatus.FAILED:
            raise DomainValidationException("Cannot reverse a failed transaction", field="status")
        now = datetime.now(timezone.utc)
        self.status = ProviderTransactionStatus.REVERSED
        self.reverse_time = now
        self.updated_at = now
        return True

    def times_ms(self) -> dict[str, Optional[int]]:
        return {
            "trans_time": _epoch_ms(self.trans_time) if self.trans_time else None,
            "confirm_time": _epoch_ms(self.confirm_time) if self.confirm_time else None,
            "reverse_time": _epoch_ms(self.reverse_time) if self.reverse_time else None,
        }
