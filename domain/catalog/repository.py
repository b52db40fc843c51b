"""
Catalog repository interface (read products, write stock counters).
"""
from abc import ABC, abstractmethod
from typing import Iterable, List, Optional

from .entity import Product


class ProductRepository(ABC):

    @abstractmethod
    async def add(self, product: Product) -> Product:
        ...

    @abstractmethod
    async def get_by_id(self, product_id: str) -> Optional[Product]:
        ...

    @abstractmethod
    async def get_many(self, product_ids: Iterable[str]) -> List[Product]:
        ...

    @abstractmethod
    async def decrement_stock(self, product_id: str, sku: str, quantity: int) -> bool:
        """Conditionally take `quantity` units; False if the active variant has fewer."""

    @abstractmethod
    async def increment_stock(self, product_id: str, sku: str, quantity: int) -> bool:
        """Return `quantity` units; False if the variant does not exist."""
