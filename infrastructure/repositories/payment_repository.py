"""
Payment ledger repositories (SQLAlchemy)
"""
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from domain.payment.entity import Payment, PaymentStatus, ProviderTransaction, ProviderTransactionStatus
from domain.payment.repository import PaymentRepository, ProviderTransactionRepository
from infrastructure.models.payment import PaymentModel, ProviderTransactionModel
from core.logging_config import get_logger


logger = get_logger(__name__)


class SQLAlchemyPaymentRepository(PaymentRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: PaymentModel) -> Payment:
        return Payment(
            id=model.id,
            user_id=model.user_id,
            order_id=model.order_id,
            amount=model.amount,
            currency=model.currency,
            method=model.method,
            status=PaymentStatus(model.status),
            transaction_id=model.transaction_id,
            provider_data=model.provider_data or {},
            created_at=model.created_at,
            updated_at=model.updated_at,
            completed_at=model.completed_at,
        )

    def _to_model(self, entity: Payment) -> PaymentModel:
        return PaymentModel(
            id=entity.id,
            user_id=entity.user_id,
            order_id=entity.order_id,
            method=entity.method.value,
            transaction_id=entity.transaction_id,
            amount=entity.amount,
            currency=entity.currency,
            status=entity.status.value,
            provider_data=entity.provider_data,
            created_at=entity.created_at,
            updated_at=entity.updated_at,
            completed_at=entity.completed_at,
        )

    async def _one(self, *criteria) -> Optional[Payment]:
        # status is changed with compare-and-set UPDATEs; refresh identity-mapped rows
        result = await self.session.execute(
            select(PaymentModel).where(*criteria).execution_options(populate_existing=True)
        )
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def add(self, payment: Payment) -> Payment:
        model = self._to_model(payment)
        self.session.add(model)
        await self.session.flush()
        logger.info(
            "payment_created",
            payment_id=model.id,
            order_id=model.order_id,
            method=model.method,
        )
        return self._to_entity(model)

    async def get_by_id(self, payment_id: str) -> Optional[Payment]:
        return await self._one(PaymentModel.id == payment_id)

    async def get_by_transaction_id(self, transaction_id: str) -> Optional[Payment]:
        return await self._one(PaymentModel.transaction_id == transaction_id)

    async def list_by_user(self, user_id: str, skip: int = 0, limit: int = 100) -> List[Payment]:
        result = await self.session.execute(
            select(PaymentModel)
            .where(PaymentModel.user_id == user_id)
            .order_by(PaymentModel.created_at.desc())
            .offset(skip)
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def list_stale(
        self,
        statuses: Iterable[PaymentStatus],
        older_than: datetime,
        *,
        with_transaction: bool,
        limit: int = 100,
    ) -> List[Payment]:
        tx_clause = (
            PaymentModel.transaction_id.is_not(None)
            if with_transaction
            else PaymentModel.transaction_id.is_(None)
        )
        result = await self.session.execute(
            select(PaymentModel)
            .where(
                PaymentModel.status.in_([PaymentStatus(s).value for s in statuses]),
                PaymentModel.updated_at < older_than,
                tx_clause,
            )
            .order_by(PaymentModel.updated_at.asc())
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def set_transaction_id(self, payment_id: str, transaction_id: str) -> bool:
        result = await self.session.execute(
            update(PaymentModel)
            .where(PaymentModel.id == payment_id, PaymentModel.transaction_id.is_(None))
            .values(transaction_id=transaction_id, updated_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def compare_and_set_status(
        self,
        payment_id: str,
        expected: PaymentStatus,
        target: PaymentStatus,
        *,
        updated_at: datetime,
        completed_at: Optional[datetime] = None,
        provider_data: Optional[dict] = None,
    ) -> bool:
        values = {"status": PaymentStatus(target).value, "updated_at": updated_at}
        if completed_at is not None:
            values["completed_at"] = completed_at
        if provider_data is not None:
            values["provider_data"] = provider_data
        result = await self.session.execute(
            update(PaymentModel)
            .where(PaymentModel.id == payment_id, PaymentModel.status == PaymentStatus(expected).value)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        changed = result.rowcount == 1
        if not changed:
            logger.info(
                "payment_status_cas_lost",
                payment_id=payment_id,
                expected=PaymentStatus(expected).value,
                target=PaymentStatus(target).value,
            )
        return changed


class SQLAlchemyProviderTransactionRepository(ProviderTransactionRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: ProviderTransactionModel) -> ProviderTransaction:
        return ProviderTransaction(
            id=model.id,
            transaction_id=model.transaction_id,
            service_id=model.service_id,
            account=model.account,
            amount=model.amount,
            status=ProviderTransactionStatus(model.status),
            payment_id=model.payment_id,
            trans_time=model.trans_time,
            confirm_time=model.confirm_time,
            reverse_time=model.reverse_time,
            payment_source=model.payment_source,
            phone=model.phone,
            card_type=model.card_type,
            processing_reference_number=model.processing_reference_number,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _apply(self, model: ProviderTransactionModel, entity: ProviderTransaction) -> None:
        model.transaction_id = entity.transaction_id
        model.service_id = entity.service_id
        model.account = entity.account
        model.amount = entity.amount
        model.status = entity.status.value
        model.payment_id = entity.payment_id
        model.trans_time = entity.trans_time
        model.confirm_time = entity.confirm_time
        model.reverse_time = entity.reverse_time
        model.payment_source = entity.payment_source
        model.phone = entity.phone
        model.card_type = entity.card_type
        model.processing_reference_number = entity.processing_reference_number
        model.updated_at = entity.updated_at

    async def add(self, record: ProviderTransaction) -> ProviderTransaction:
        model = ProviderTransactionModel(id=record.id, created_at=record.created_at)
        self._apply(model, record)
        self.session.add(model)
        await self.session.flush()
        return self._to_entity(model)

    async def _one(self, *criteria) -> Optional[ProviderTransaction]:
        result = await self.session.execute(
            select(ProviderTransactionModel).where(*criteria).execution_options(populate_existing=True)
        )
        model = result.scalars().first()
        return self._to_entity(model) if model else None

    async def get_by_transaction_id(self, transaction_id: str) -> Optional[ProviderTransaction]:
        return await self._one(ProviderTransactionModel.transaction_id == transaction_id)

    async def get_pending_by_account(self, account: str) -> Optional[ProviderTransaction]:
        return await self._one(
            ProviderTransactionModel.account == account,
            ProviderTransactionModel.status == ProviderTransactionStatus.PENDING.value,
        )

    async def update(self, record: ProviderTransaction) -> ProviderTransaction:
        model = await self.session.get(ProviderTransactionModel, record.id)
        if model is None:
            raise ValueError(f"Provider transaction {record.id} does not exist")
        self._apply(model, record)
        await self.session.flush()
        return self._to_entity(model)
