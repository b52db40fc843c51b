"""
Payment ledger repository interfaces.
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Iterable, List, Optional

from .entity import Payment, PaymentStatus, ProviderTransaction


class PaymentRepository(ABC):
    """Ledger access; payments are never deleted."""

    @abstractmethod
    async def add(self, payment: Payment) -> Payment:
        ...

    @abstractmethod
    async def get_by_id(self, payment_id: str) -> Optional[Payment]:
        ...

    @abstractmethod
    async def get_by_transaction_id(self, transaction_id: str) -> Optional[Payment]:
        ...

    @abstractmethod
    async def list_by_user(self, user_id: str, skip: int = 0, limit: int = 100) -> List[Payment]:
        """Newest first."""

    @abstractmethod
    async def list_stale(
        self,
        statuses: Iterable[PaymentStatus],
        older_than: datetime,
        *,
        with_transaction: bool,
        limit: int = 100,
    ) -> List[Payment]:
        """Payments in `statuses` last updated before `older_than`."""

    @abstractmethod
    async def set_transaction_id(self, payment_id: str, transaction_id: str) -> bool:
        """Assign the provider transaction id only while it is still empty."""

    @abstractmethod
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
        """Atomically move `expected` → `target`; False when another writer got there first."""


class ProviderTransactionRepository(ABC):
    """Webhook provider transaction records."""

    @abstractmethod
    async def add(self, record: ProviderTransaction) -> ProviderTransaction:
        ...

    @abstractmethod
    async def get_by_transaction_id(self, transaction_id: str) -> Optional[ProviderTransaction]:
        ...

    @abstractmethod
    async def get_pending_by_account(self, account: str) -> Optional[ProviderTransaction]:
        ...

    @abstractmethod
    async def update(self, record: ProviderTransaction) -> ProviderTransaction:
        ...
