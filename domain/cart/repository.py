"""
Cart repository interface.
"""
from abc import ABC, abstractmethod
from typing import Optional

from .entity import Cart


class CartRepository(ABC):

    @abstractmethod
    async def get_by_user(self, user_id: str) -> Optional[Cart]:
        ...

    @abstractmethod
    async def get_by_guest(self, guest_token: str) -> Optional[Cart]:
        ...

    @abstractmethod
    async def add(self, cart: Cart) -> Cart:
        ...

    @abstractmethod
    async def save(self, cart: Cart) -> Cart:
        """Persist owner and replace the item list."""

    @abstractmethod
    async def delete(self, cart_id: str) -> None:
        ...
