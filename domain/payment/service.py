"""
Payment domain service: ledger writes guarded by the payment state machine.
"""
from datetime import datetime, timezone
from typing import List, Optional

from .entity import Payment, PaymentMethod, PaymentStatus
from .repository import PaymentRepository
from .events import (
    PaymentCompleted,
    PaymentEvent,
    PaymentFailed,
    PaymentProcessing,
    PaymentRefunded,
)
from domain.common.exceptions import DomainValidationException


_EVENT_FOR_STATUS = {
    PaymentStatus.PROCESSING: PaymentProcessing,
    PaymentStatus.COMPLETED: PaymentCompleted,
    PaymentStatus.FAILED: PaymentFailed,
    PaymentStatus.REFUNDED: PaymentRefunded,
}


class PaymentDomainService:
    """
    Orchestrates payment state changes against the repository.

    Every status change goes through `apply_status`, which persists with a
    compare-and-set on the current status. Only the writer whose update actually
    changed the row receives an event, so side effects hang off events and run
    at most once per transition.
    """

    def __init__(self, payment_repository: PaymentRepository):
        self.payment_repository = payment_repository
        self.events: List[PaymentEvent] = []

    async def open_payment(
        self,
        *,
        user_id: str,
        order_id: str,
        amount: int,
        currency: str,
        method: PaymentMethod,
    ) -> Payment:
        payment = Payment.open(
            user_id=user_id,
            order_id=order_id,
            amount=amount,
            currency=currency.upper(),
            method=method,
        )
        return await self.payment_repository.add(payment)

    async def attach_transaction(self, payment: Payment, transaction_id: str) -> Payment:
        payment.assign_transaction_id(transaction_id)
        if not await self.payment_repository.set_transaction_id(payment.id, transaction_id):
            current = await self.payment_repository.get_by_id(payment.id)
            if current is None or current.transaction_id != transaction_id:
                raise DomainValidationException(
                    "transaction_id is already assigned",
                    field="transaction_id",
                    details={"payment_id": payment.id},
                )
        return payment

    async def apply_status(
        self,
        payment: Payment,
        target: PaymentStatus,
        *,
        reason: Optional[str] = None,
        refund_id: Optional[str] = None,
    ) -> Optional[PaymentEvent]:
        """
        Move `payment` to `target` if the state machine allows it.

        Returns the recorded event, or None when nothing changed: the status is
        already `target`, the transition is not allowed (e.g. a late `pending`
        after `failed`), or a concurrent writer changed the row first.
        """
        target = PaymentStatus(target)
        if payment.status is target or not payment.can_transition(target):
            return None

        now = datetime.now(timezone.utc)
        provider_data = None
        if target is PaymentStatus.REFUNDED and refund_id:
            provider_data = {**payment.provider_data, "refund_id": refund_id}
        changed = await self.payment_repository.compare_and_set_status(
            payment.id,
            payment.status,
            target,
            updated_at=now,
            completed_at=now if target is PaymentStatus.COMPLETED else None,
            provider_data=provider_data,
        )
        if not changed:
            return None

        payment.transition_to(target, at=now)
        if provider_data is not None:
            payment.provider_data = provider_data
        event_cls = _EVENT_FOR_STATUS[target]
        extra: dict = {}
        if event_cls is PaymentFailed:
            extra["reason"] = reason
        elif event_cls is PaymentRefunded:
            extra["refund_id"] = refund_id or ""
        event = event_cls(
            payment_id=payment.id,
            order_id=payment.order_id,
            method=payment.method.value,
            amount=payment.amount,
            transaction_id=payment.transaction_id,
            **extra,
        )
        self.events.append(event)
        return event

    def collect_events(self) -> List[PaymentEvent]:
        events, self.events = self.events, []
        return events
