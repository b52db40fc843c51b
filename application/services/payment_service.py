"""
Application service orchestrating payment use-cases.

This class depends only on the application PaymentProvider port and DTOs.
Adapters are built once by the composition root (API lifespan, Celery worker)
and injected through `PaymentGateways`, keeping dependencies one-way.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, List, Mapping, Optional, Tuple

from application.dtos.payments import (
    CallbackResult,
    CreatePayment,
    CreatePaymentRequest,
    PaymentDTO,
    PaymentIntent,
    RefundResult,
)
from application.ports.notifier import Notifier, notify_safely
from application.ports.payment_gateway import PaymentGateways
from application.services.order_service import cancel_and_release
from core.logging_config import get_logger, log_security_event
from domain.catalog.service import StockReservationService
from domain.common.exceptions import (
    BusinessException,
    DomainValidationException,
    ForbiddenException,
    OrderNotFoundException,
    PaymentAmountMismatchException,
    PaymentNotFoundException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import Order
from domain.payment.entity import (
    Payment,
    PaymentMethod,
    PaymentStatus,
    ProviderTransaction,
    ProviderTransactionStatus,
)
from domain.payment.events import PaymentCompleted, PaymentEvent, PaymentFailed, PaymentRefunded
from domain.payment.service import PaymentDomainService
from shared.codes.payment_codes import PaymentCode
from shared.crypto import generate_opaque_id


logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ReconcileReport:
    checked: int = 0
    applied: int = 0
    errors: int = 0
    orphans_failed: int = 0


async def sync_order_with_event(uow: AbstractUnitOfWork, event: PaymentEvent) -> None:
    """Mirror an applied payment transition onto the linked order."""
    order = await uow.orders.get_by_id(event.order_id)
    if order is None:
        logger.warning("payment_order_missing", payment_id=event.payment_id, order_id=event.order_id)
        return
    if order.payment_id != event.payment_id:
        # only the order's current payment attempt drives its payment status
        logger.warning(
            "payment_order_unlinked",
            payment_id=event.payment_id,
            order_id=order.id,
            linked_payment_id=order.payment_id,
        )
        return
    if isinstance(event, PaymentCompleted):
        order.mark_paid()
    elif isinstance(event, PaymentFailed):
        order.mark_payment_failed()
    elif isinstance(event, PaymentRefunded):
        order.mark_refunded()
    else:
        return
    await uow.orders.update(order)


class PaymentService:
    """
    Payment orchestrator.

    The ledger row is written before any provider call so that a failed or
    timed-out dispatch still leaves a `pending` record to retry or reconcile.
    Every status change goes through `PaymentDomainService.apply_status`;
    order updates and notifications follow only the events it returns.
    """

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        gateways: PaymentGateways,
        notifier: Optional[Notifier] = None,
        *,
        currency: str = "UZS",
        stale_after_minutes: int = 15,
        orphan_ttl_minutes: int = 1440,
        reconcile_batch_size: int = 100,
    ) -> None:
        self._uow_factory = uow_factory
        self._gateways = gateways
        self._notifier = notifier
        self._currency = currency
        self._stale_after = timedelta(minutes=stale_after_minutes)
        self._orphan_ttl = timedelta(minutes=orphan_ttl_minutes)
        self._batch_size = reconcile_batch_size

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------
    async def create_payment(self, user_id: str, req: CreatePaymentRequest) -> PaymentIntent:
        logger.info(
            "payment_create_request",
            user_id=user_id,
            order_id=req.order_id,
            method=req.method.value,
            amount=req.amount,
        )
        async with self._uow_factory() as uow:
            order = await uow.orders.get_by_id(req.order_id)
            if order is None or order.user_id != user_id:
                raise OrderNotFoundException(req.order_id)
            if req.amount != order.grand_total:
                raise PaymentAmountMismatchException(order.grand_total, req.amount)

            payments = PaymentDomainService(uow.payments)
            await self._give_up_linked_payment(uow, payments, order)
            payment = await payments.open_payment(
                user_id=user_id,
                order_id=order.id,
                amount=order.grand_total,
                currency=order.currency,
                method=req.method,
            )
            order.replace_payment(payment.id, req.method.value)
            await uow.orders.update(order)
        return await self._dispatch(
            payment,
            return_url=str(req.return_url),
            description=req.description,
            phone=req.phone,
        )

    @staticmethod
    async def _give_up_linked_payment(
        uow: AbstractUnitOfWork, payments: PaymentDomainService, order: Order
    ) -> None:
        """Fail the order's current attempt if it never reached a provider; refuse if it is in flight."""
        if not order.awaiting_payment:
            raise DomainValidationException(
                "Order is not awaiting payment",
                field="order_id",
                details={"status": order.status.value, "payment_status": order.payment_status.value},
            )
        linked = await uow.payments.get_by_id(order.payment_id) if order.payment_id else None
        if linked is None or linked.status is PaymentStatus.FAILED:
            return
        if linked.status is PaymentStatus.PENDING and not linked.transaction_id:
            await payments.apply_status(linked, PaymentStatus.FAILED, reason="superseded")
            return
        raise DomainValidationException(
            "Order already has a payment in progress",
            field="order_id",
            details={"payment_id": linked.id, "status": linked.status.value},
        )

    async def start_payment(
        self,
        payment_id: str,
        *,
        return_url: str,
        description: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> PaymentIntent:
        """Dispatch an existing pending payment (e.g. one opened by checkout)."""
        async with self._uow_factory(readonly=True) as uow:
            payment = await uow.payments.get_by_id(payment_id)
        if payment is None:
            raise PaymentNotFoundException(payment_id=payment_id)
        if payment.status is not PaymentStatus.PENDING or payment.transaction_id:
            raise DomainValidationException(
                "Payment was already dispatched",
                field="payment_id",
                details={"payment_id": payment_id, "status": payment.status.value},
            )
        return await self._dispatch(payment, return_url=return_url, description=description, phone=phone)

    async def _dispatch(
        self,
        payment: Payment,
        *,
        return_url: str,
        description: Optional[str],
        phone: Optional[str],
    ) -> PaymentIntent:
        gateway = self._gateways.for_method(payment.method)
        request = CreatePayment(
            amount=payment.amount,
            order_id=payment.order_id,
            return_url=return_url,
            description=description,
            phone=phone,
            merchant_trans_id=generate_opaque_id(),
            currency=payment.currency,
        )
        try:
            intent = await gateway.create_payment(request)
        except BusinessException as exc:
            # payment stays pending without a transaction id; the sweep picks it up
            logger.warning(
                "payment_create_failed",
                payment_id=payment.id,
                method=payment.method.value,
                code=int(exc.code),
                error=exc.message,
                retryable=getattr(exc, "retryable", False),
            )
            raise

        async with self._uow_factory() as uow:
            current = await uow.payments.get_by_id(payment.id) or payment
            await PaymentDomainService(uow.payments).attach_transaction(current, intent.transaction_id)
            if current.method is PaymentMethod.UZUM:
                await uow.provider_transactions.add(
                    ProviderTransaction.record(
                        transaction_id=intent.transaction_id,
                        service_id="",
                        account=intent.transaction_id,
                        amount=current.amount,
                        payment_id=current.id,
                        status=ProviderTransactionStatus.PENDING,
                    )
                )

        logger.info(
            "payment_create_response",
            payment_id=payment.id,
            method=payment.method.value,
            transaction_id=intent.transaction_id,
        )
        return PaymentIntent(
            transaction_id=intent.transaction_id,
            payment_url=intent.payment_url,
            payment_id=payment.id,
        )

    # ------------------------------------------------------------------
    # Callbacks and polling
    # ------------------------------------------------------------------
    async def handle_callback(
        self,
        method: PaymentMethod | str,
        payload: Mapping[str, Any],
        headers: Optional[Mapping[str, str]] = None,
    ) -> CallbackResult:
        method = PaymentMethod(method)
        gateway = self._gateways.for_method(method)
        try:
            result = gateway.process_callback(payload, headers or {})
        except BusinessException as exc:
            if exc.code == PaymentCode.SIGNATURE_ERROR:
                log_security_event(
                    "payment_callback_rejected",
                    method=method.value,
                    reason=exc.message,
                    transaction_id=str(payload.get("transaction_id") or payload.get("merchant_trans_id") or ""),
                )
            raise

        logger.info(
            "payment_callback_received",
            method=method.value,
            transaction_id=result.transaction_id,
            status=result.status.value,
            provider_status=result.provider_status,
        )
        payment, event = await self._apply(
            method,
            result.transaction_id,
            result.status,
            amount=result.amount,
            reason=result.provider_status,
        )
        result.payment_id = payment.id
        result.payment_status = payment.status
        result.applied = event is not None
        return result

    async def check_status(self, method: PaymentMethod | str, transaction_id: str) -> PaymentStatus:
        """Poll the provider and apply the answer to the ledger when the payment is known."""
        method = PaymentMethod(method)
        status = await self._gateways.for_method(method).check_status(transaction_id)
        try:
            await self._apply(method, transaction_id, status, reason="status_poll")
        except PaymentNotFoundException:
            logger.info("payment_status_unknown_transaction", method=method.value, transaction_id=transaction_id)
        return status

    async def _apply(
        self,
        method: PaymentMethod,
        transaction_id: str,
        status: PaymentStatus,
        *,
        amount: Optional[int] = None,
        reason: Optional[str] = None,
    ) -> Tuple[Payment, Optional[PaymentEvent]]:
        async with self._uow_factory() as uow:
            payment = await uow.payments.get_by_transaction_id(transaction_id)
            if payment is None or payment.method is not method:
                raise PaymentNotFoundException(transaction_id=transaction_id)
            if amount is not None and amount != payment.amount:
                raise PaymentAmountMismatchException(payment.amount, amount)

            payments = PaymentDomainService(uow.payments)
            event = await payments.apply_status(payment, status, reason=reason)
            if event is not None:
                await sync_order_with_event(uow, event)

        if event is None:
            logger.info(
                "payment_status_unchanged",
                payment_id=payment.id,
                status=payment.status.value,
                requested=PaymentStatus(status).value,
            )
        else:
            logger.info("payment_status_applied", payment_id=payment.id, event_name=event.name)
            await self._notify(event)
        return payment, event

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    async def get_payment(self, payment_id: str, user_id: Optional[str] = None) -> PaymentDTO:
        async with self._uow_factory(readonly=True) as uow:
            payment = await uow.payments.get_by_id(payment_id)
        if payment is None or (user_id is not None and payment.user_id != user_id):
            raise PaymentNotFoundException(payment_id=payment_id)
        return PaymentDTO.from_entity(payment)

    async def get_payment_by_transaction(self, transaction_id: str) -> PaymentDTO:
        async with self._uow_factory(readonly=True) as uow:
            payment = await uow.payments.get_by_transaction_id(transaction_id)
        if payment is None:
            raise PaymentNotFoundException(transaction_id=transaction_id)
        return PaymentDTO.from_entity(payment)

    async def list_user_payments(self, user_id: str, skip: int = 0, limit: int = 100) -> List[PaymentDTO]:
        async with self._uow_factory(readonly=True) as uow:
            payments = await uow.payments.list_by_user(user_id, skip=skip, limit=limit)
        return [PaymentDTO.from_entity(p) for p in payments]

    # ------------------------------------------------------------------
    # Refund
    # ------------------------------------------------------------------
    async def refund_payment(self, payment_id: str, user_id: str) -> RefundResult:
        async with self._uow_factory(readonly=True) as uow:
            payment = await uow.payments.get_by_id(payment_id)
        if payment is None:
            raise PaymentNotFoundException(payment_id=payment_id)
        if payment.user_id != user_id:
            raise ForbiddenException("Payment belongs to another user", details={"payment_id": payment_id})
        payment.ensure_refundable()

        logger.info("payment_refund_request", payment_id=payment.id, method=payment.method.value)
        result = await self._gateways.for_method(payment.method).refund(payment.transaction_id, payment.amount)

        async with self._uow_factory() as uow:
            current = await uow.payments.get_by_id(payment.id) or payment
            event = await PaymentDomainService(uow.payments).apply_status(
                current, PaymentStatus.REFUNDED, refund_id=result.refund_id
            )
            if event is not None:
                await sync_order_with_event(uow, event)

        logger.info("payment_refunded", payment_id=payment.id, refund_id=result.refund_id, applied=event is not None)
        if event is not None:
            await self._notify(event)
        return result

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------
    async def reconcile_pending(self, now: Optional[datetime] = None) -> ReconcileReport:
        """Poll stale in-flight payments and fail orphans that never reached a provider."""
        now = now or _utcnow()
        report = ReconcileReport()

        async with self._uow_factory(readonly=True) as uow:
            stale = await uow.payments.list_stale(
                [PaymentStatus.PENDING, PaymentStatus.PROCESSING],
                now - self._stale_after,
                with_transaction=True,
                limit=self._batch_size,
            )
        for payment in stale:
            report.checked += 1
            try:
                status = await self._gateways.for_method(payment.method).check_status(payment.transaction_id)
                _, event = await self._apply(payment.method, payment.transaction_id, status, reason="reconcile")
            except BusinessException as exc:
                report.errors += 1
                logger.warning(
                    "payment_reconcile_failed",
                    payment_id=payment.id,
                    method=payment.method.value,
                    code=int(exc.code),
                    error=exc.message,
                )
                continue
            if event is not None:
                report.applied += 1

        async with self._uow_factory(readonly=True) as uow:
            orphans = await uow.payments.list_stale(
                [PaymentStatus.PENDING],
                now - self._orphan_ttl,
                with_transaction=False,
                limit=self._batch_size,
            )
        for orphan in orphans:
            if await self._fail_orphan(orphan.id):
                report.orphans_failed += 1

        logger.info(
            "payment_reconcile_finished",
            checked=report.checked,
            applied=report.applied,
            errors=report.errors,
            orphans_failed=report.orphans_failed,
        )
        return report

    async def _fail_orphan(self, payment_id: str) -> bool:
        async with self._uow_factory() as uow:
            payment = await uow.payments.get_by_id(payment_id)
            if payment is None or payment.transaction_id:
                return False
            event = await PaymentDomainService(uow.payments).apply_status(
                payment, PaymentStatus.FAILED, reason="orphaned"
            )
            if event is None:
                return False
            order = await uow.orders.get_by_id(payment.order_id)
            if order is not None and order.payment_id == payment.id:
                order.mark_payment_failed()
                if order.can_cancel():
                    await cancel_and_release(order, uow, StockReservationService())
                else:
                    await uow.orders.update(order)

        logger.info("payment_orphan_failed", payment_id=payment_id, order_id=payment.order_id)
        await self._notify(event)
        return True

    async def _notify(self, event: PaymentEvent) -> None:
        if self._notifier is None:
            return
        await notify_safely(
            self._notifier.payment_event(event),
            kind=event.name,
            payment_id=event.payment_id,
        )
