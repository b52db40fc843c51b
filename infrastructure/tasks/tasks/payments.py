"""Payment reconciliation and status polling tasks"""
from __future__ import annotations

import asyncio
from dataclasses import asdict
from typing import Any, Awaitable, Callable, TypeVar

from celery import shared_task

from application.services.payment_service import PaymentService
from core.config import settings
from core.logging_config import get_logger
from infrastructure.container import build_services
from infrastructure.database import build_engine, build_session_factory
from infrastructure.external.payments.exceptions import PaymentRecoverableError
from ..utils.base_task import BaseTask

logger = get_logger(__name__)

T = TypeVar("T")


async def _with_payment_service(work: Callable[[PaymentService], Awaitable[T]]) -> T:
    # each task run owns its engine: asyncio.run gives it a fresh loop
    engine = build_engine(settings.database.url, echo=settings.database.echo)
    services = build_services(build_session_factory(engine))
    try:
        return await work(services.payments)
    finally:
        await services.aclose()
        await engine.dispose()


@shared_task(name="payments.reconcile_pending", bind=True, base=BaseTask)
def reconcile_pending(self) -> dict[str, Any]:
    """Poll stale in-flight payments and fail orphaned ones."""
    report = asyncio.run(_with_payment_service(lambda service: service.reconcile_pending()))
    return asdict(report)


@shared_task(
    name="payments.check_status",
    bind=True,
    base=BaseTask,
    max_retries=3,
    default_retry_delay=30,
)
def check_status(self, method: str, transaction_id: str) -> dict[str, Any]:
    try:
        status = asyncio.run(
            _with_payment_service(lambda service: service.check_status(method, transaction_id))
        )
    except PaymentRecoverableError as exc:
        logger.warning("payment_status_poll_retry", method=method, transaction_id=transaction_id, error=exc.message)
        raise self.retry(exc=exc)
    logger.info("payment_status_polled", method=method, transaction_id=transaction_id, status=status.value)
    return {"status": status.value}
