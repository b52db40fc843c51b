"""
Uzum merchant webhook phases: check → create → confirm → reverse, plus status.

Each phase is an authenticated call from Uzum. The provider transaction record
tracks Uzum's own lifecycle; the linked Payment only moves through
`PaymentDomainService.apply_status`.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, List, Optional

from application.dtos.uzum import UzumCheckRequest, UzumConfirmRequest, UzumCreateRequest, UzumTransRequest
from application.ports.notifier import Notifier, notify_safely
from application.services.order_service import cancel_and_release
from application.services.payment_service import sync_order_with_event
from core.logging_config import get_logger, log_security_event
from domain.catalog.service import StockReservationService
from domain.common.exceptions import (
    DomainValidationException,
    InvalidStatusTransitionException,
    PaymentAmountMismatchException,
    PaymentNotFoundException,
    ProviderTransactionNotFoundException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.payment.entity import (
    Payment,
    PaymentMethod,
    PaymentStatus,
    ProviderTransaction,
    ProviderTransactionStatus,
)
from domain.payment.events import PaymentEvent
from domain.payment.service import PaymentDomainService


logger = get_logger(__name__)

# Uzum amounts are tiyin
SUBUNITS = 100


def _epoch_ms(dt: Optional[datetime]) -> Optional[int]:
    return int(dt.timestamp() * 1000) if dt else None


class UzumWebhookService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        authenticate: Callable[[Optional[str]], bool],
        notifier: Optional[Notifier] = None,
    ) -> None:
        self._uow_factory = uow_factory
        self._authenticate = authenticate
        self._notifier = notifier
        self._reservation = StockReservationService()

    def verify_auth(self, authorization: Optional[str], *, phase: str) -> bool:
        if self._authenticate(authorization):
            return True
        log_security_event("uzum_webhook_auth_failed", phase=phase, has_header=bool(authorization))
        return False

    async def _payable_payment(self, uow: AbstractUnitOfWork, account: str) -> Payment:
        payment = await uow.payments.get_by_transaction_id(account) if account else None
        if payment is None or payment.method is not PaymentMethod.UZUM:
            raise PaymentNotFoundException(transaction_id=account or None)
        return payment

    async def check(self, req: UzumCheckRequest) -> dict[str, Any]:
        async with self._uow_factory(readonly=True) as uow:
            payment = await self._payable_payment(uow, req.account)
        if payment.status not in (PaymentStatus.PENDING, PaymentStatus.PROCESSING):
            raise DomainValidationException(
                "Payment is no longer payable",
                field="account",
                details={"status": payment.status.value},
            )
        return {"status": "OK", "data": {"account": req.account, "amount": payment.amount * SUBUNITS}}

    async def create(self, req: UzumCreateRequest) -> dict[str, Any]:
        async with self._uow_factory() as uow:
            existing = await uow.provider_transactions.get_by_transaction_id(req.trans_id)
            if existing is not None and existing.status is not ProviderTransactionStatus.PENDING:
                logger.info("uzum_create_replayed", trans_id=req.trans_id, status=existing.status.value)
                return self._created_response(existing)

            payment = await self._payable_payment(uow, req.account)
            if payment.is_final() or payment.status is PaymentStatus.COMPLETED:
                raise DomainValidationException(
                    "Payment is no longer payable",
                    field="account",
                    details={"status": payment.status.value},
                )
            if req.amount != payment.amount * SUBUNITS:
                raise PaymentAmountMismatchException(payment.amount * SUBUNITS, req.amount)

            record = await uow.provider_transactions.get_pending_by_account(req.account)
            if record is not None:
                record.mark_created(req.trans_id)
                record.service_id = req.service_id
                record.payment_id = record.payment_id or payment.id
                record = await uow.provider_transactions.update(record)
            else:
                record = await uow.provider_transactions.add(
                    ProviderTransaction.record(
                        transaction_id=req.trans_id,
                        service_id=req.service_id,
                        account=req.account,
                        amount=payment.amount,
                        payment_id=payment.id,
                    )
                )

        logger.info("uzum_transaction_created", trans_id=req.trans_id, payment_id=record.payment_id)
        return self._created_response(record)

    @staticmethod
    def _created_response(record: ProviderTransaction) -> dict[str, Any]:
        return {
            "status": record.status.value,
            "trans_id": record.transaction_id,
            "trans_time": _epoch_ms(record.trans_time),
            "data": {"account": record.account},
        }

    async def confirm(self, req: UzumConfirmRequest) -> dict[str, Any]:
        events: List[PaymentEvent] = []
        async with self._uow_factory() as uow:
            record = await uow.provider_transactions.get_by_transaction_id(req.trans_id)
            if record is None:
                raise ProviderTransactionNotFoundException(req.trans_id)

            payment = await uow.payments.get_by_id(record.payment_id) if record.payment_id else None
            if record.status is not ProviderTransactionStatus.CONFIRMED:
                self._ensure_confirmable(payment)

            if record.confirm(payment_source=req.payment_source, phone=req.phone):
                record.card_type = req.card_type or record.card_type
                record.processing_reference_number = (
                    req.processing_reference_number or record.processing_reference_number
                )
                await uow.provider_transactions.update(record)
                payments = PaymentDomainService(uow.payments)
                if payment is not None:
                    event = await payments.apply_status(payment, PaymentStatus.COMPLETED)
                    if event is not None:
                        await sync_order_with_event(uow, event)
                events = payments.collect_events()
            else:
                logger.info("uzum_confirm_replayed", trans_id=req.trans_id)

        await self._notify(events)
        return {
            "status": record.status.value,
            "trans_id": record.transaction_id,
            "confirm_time": _epoch_ms(record.confirm_time),
            "data": {
                "payment_source": record.payment_source,
                "confirmation_date": record.confirm_time.astimezone(timezone.utc).isoformat() if record.confirm_time else None,
            },
        }

    @staticmethod
    def _ensure_confirmable(payment: Optional[Payment]) -> None:
        if payment is None:
            raise PaymentNotFoundException()
        if payment.status is not PaymentStatus.COMPLETED and not payment.can_transition(PaymentStatus.COMPLETED):
            raise InvalidStatusTransitionException(payment.status.value, PaymentStatus.COMPLETED.value)

    async def reverse(self, req: UzumTransRequest) -> dict[str, Any]:
        events: List[PaymentEvent] = []
        async with self._uow_factory() as uow:
            record = await uow.provider_transactions.get_by_transaction_id(req.trans_id)
            if record is None:
                raise ProviderTransactionNotFoundException(req.trans_id)

            if record.reverse():
                await uow.provider_transactions.update(record)
                payments = PaymentDomainService(uow.payments)
                payment = await uow.payments.get_by_id(record.payment_id) if record.payment_id else None
                if payment is not None:
                    target = (
                        PaymentStatus.REFUNDED if payment.status is PaymentStatus.COMPLETED else PaymentStatus.FAILED
                    )
                    event = await payments.apply_status(payment, target, reason="reversed", refund_id=record.transaction_id)
                    if event is not None:
                        await sync_order_with_event(uow, event)
                    order = await uow.orders.get_by_id(payment.order_id)
                    if order is not None and order.can_cancel():
                        await cancel_and_release(order, uow, self._reservation)
                events = payments.collect_events()
            else:
                logger.info("uzum_reverse_replayed", trans_id=req.trans_id)

        await self._notify(events)
        return {
            "status": record.status.value,
            "trans_id": record.transaction_id,
            "reverse_time": _epoch_ms(record.reverse_time),
        }

    async def status(self, req: UzumTransRequest) -> dict[str, Any]:
        async with self._uow_factory(readonly=True) as uow:
            record = await uow.provider_transactions.get_by_transaction_id(req.trans_id)
        if record is None:
            return {"status": ProviderTransactionStatus.FAILED.value, "trans_id": req.trans_id}
        return {"status": record.status.value, "trans_id": record.transaction_id, **record.times_ms()}

    async def _notify(self, events: List[PaymentEvent]) -> None:
        if self._notifier is None:
            return
        for event in events:
            await notify_safely(self._notifier.payment_event(event), kind=event.name, payment_id=event.payment_id)
