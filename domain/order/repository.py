"""
Order repository interface.
"""
from abc import ABC, abstractmethod
from typing import List, Optional

from .entity import Order


class OrderRepository(ABC):

    @abstractmethod
    async def add(self, order: Order) -> Order:
        ...

    @abstractmethod
    async def get_by_id(self, order_id: str) -> Optional[Order]:
        ...

    @abstractmethod
    async def list_by_user(self, user_id: str, skip: int = 0, limit: int = 100) -> List[Order]:
        """Newest first."""

    @abstractmethod
    async def update(self, order: Order) -> Order:
        """Persist payment link and status fields; items and totals are never rewritten."""
