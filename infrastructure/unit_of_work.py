"""SQLAlchemy Unit of Work"""
from __future__ import annotations

from typing import Optional, Callable
import inspect

from sqlalchemy.ext.asyncio import AsyncSession

from domain.common.unit_of_work import AbstractUnitOfWork
from infrastructure.database import AsyncSessionLocal
from infrastructure.repositories.cart_repository import SQLAlchemyCartRepository
from infrastructure.repositories.order_repository import SQLAlchemyOrderRepository
from infrastructure.repositories.payment_repository import (
    SQLAlchemyPaymentRepository,
    SQLAlchemyProviderTransactionRepository,
)
from infrastructure.repositories.product_repository import SQLAlchemyProductRepository


class SQLAlchemyUnitOfWork(AbstractUnitOfWork):
    """One AsyncSession and one transaction per `async with` block."""

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession] = AsyncSessionLocal,
        session: Optional[AsyncSession] = None,
        *,
        readonly: bool = False,
    ) -> None:
        super().__init__(readonly=readonly)
        self._session_factory = session_factory
        self._external_session = session
        self.session: Optional[AsyncSession] = session

    def _bind_repositories(self) -> None:
        self.products = SQLAlchemyProductRepository(self.session)
        self.carts = SQLAlchemyCartRepository(self.session)
        self.orders = SQLAlchemyOrderRepository(self.session)
        self.payments = SQLAlchemyPaymentRepository(self.session)
        self.provider_transactions = SQLAlchemyProviderTransactionRepository(self.session)

    def _unbind_repositories(self) -> None:
        self.products = None
        self.carts = None
        self.orders = None
        self.payments = None
        self.provider_transactions = None

    async def __aenter__(self) -> "SQLAlchemyUnitOfWork":
        if self.session is None:
            self.session = self._session_factory()
        self._committed = False
        self._bind_repositories()
        # readonly blocks run in the session's implicit transaction
        if not self._readonly:
            self._transaction = await self.session.begin()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            await super().__aexit__(exc_type, exc, tb)
        finally:
            tx = getattr(self, "_transaction", None)
            if tx is not None and getattr(tx, "is_active", False):
                close = getattr(tx, "close", None)
                if callable(close):
                    res = close()
                    if inspect.isawaitable(res):
                        await res
            self._transaction = None
            if self._external_session is None and self.session is not None:
                await self.session.close()
                self.session = None
            self._unbind_repositories()

    async def commit(self) -> None:
        if self._readonly:
            self._committed = True
            return
        if self.session and self.session.in_transaction():
            await self.session.commit()
        self._committed = True

    async def rollback(self) -> None:
        if self.session and self.session.in_transaction():
            await self.session.rollback()
        self._committed = False
