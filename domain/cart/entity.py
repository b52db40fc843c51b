"""
Cart: the pre-checkout working set of one identity (a user or a guest token).
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional
import uuid

from domain.common.exceptions import DomainValidationException


@dataclass
class CartItem:
    product_id: str
    variant_sku: str
    quantity: int
    assembly_selected: bool = False

    def __post_init__(self):
        if self.quantity < 1:
            raise DomainValidationException("quantity must be >= 1", field="quantity")

    def same_line(self, other: "CartItem") -> bool:
        return self.product_id == other.product_id and self.variant_sku == other.variant_sku


@dataclass
class Cart:
    id: str
    user_id: Optional[str] = None
    guest_token: Optional[str] = None
    items: List[CartItem] = field(default_factory=list)
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if bool(self.user_id) == bool(self.guest_token):
            raise DomainValidationException("A cart belongs to exactly one user or guest", field="owner")

    @classmethod
    def for_owner(cls, *, user_id: Optional[str] = None, guest_token: Optional[str] = None) -> "Cart":
        return cls(
            id=str(uuid.uuid4()),
            user_id=user_id,
            guest_token=guest_token,
            updated_at=datetime.now(timezone.utc),
        )

    @property
    def is_empty(self) -> bool:
        return not self.items

    def add_item(self, item: CartItem) -> None:
        for existing in self.items:
            if existing.same_line(item):
                existing.quantity += item.quantity
                break
        else:
            self.items.append(item)
        self.updated_at = datetime.now(timezone.utc)

    def merge_from(self, other: "Cart") -> None:
        """Sum quantities of matching product+sku lines, append the rest."""
        for item in other.items:
            self.add_item(
                CartItem(
                    product_id=item.product_id,
                    variant_sku=item.variant_sku,
                    quantity=item.quantity,
                    assembly_selected=item.assembly_selected,
                )
            )

    def assign_to_user(self, user_id: str) -> None:
        self.user_id = user_id
        self.guest_token = None
        self.updated_at = datetime.now(timezone.utc)

    def clear(self) -> None:
        self.items = []
        self.updated_at = datetime.now(timezone.utc)
