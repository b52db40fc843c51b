"""Unit of Work abstraction"""
from __future__ import annotations

from abc import ABC, abstractmethod

from domain.cart.repository import CartRepository
from domain.catalog.repository import ProductRepository
from domain.order.repository import OrderRepository
from domain.payment.repository import PaymentRepository, ProviderTransactionRepository


class AbstractUnitOfWork(ABC):
    """Transaction boundary used by application services."""

    products: ProductRepository
    carts: CartRepository
    orders: OrderRepository
    payments: PaymentRepository
    provider_transactions: ProviderTransactionRepository

    def __init__(self, *, readonly: bool = False) -> None:
        self._committed = False
        self._readonly = readonly
        self.products = None  # type: ignore[assignment]
        self.carts = None  # type: ignore[assignment]
        self.orders = None  # type: ignore[assignment]
        self.payments = None  # type: ignore[assignment]
        self.provider_transactions = None  # type: ignore[assignment]

    async def __aenter__(self) -> "AbstractUnitOfWork":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc:
            await self.rollback()
        else:
            # auto-commit only when writable and not committed explicitly
            if not self._readonly and not self._committed:
                await self.commit()

    @abstractmethod
    async def commit(self) -> None:
        ...

    @abstractmethod
    async def rollback(self) -> None:
        ...
