"""
Stock reservation: variant stock counters are taken at checkout and given back on cancellation.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable, List, Protocol

from domain.common.exceptions import (
    InsufficientStockException,
    ProductUnavailableException,
    VariantNotFoundException,
)

if TYPE_CHECKING:
    from domain.common.unit_of_work import AbstractUnitOfWork


class StockLine(Protocol):
    product_id: str
    variant_sku: str
    quantity: int


@dataclass(frozen=True)
class SkippedRelease:
    product_id: str
    sku: str
    quantity: int
    reason: str  # product_missing | variant_missing


class StockReservationService:
    """
    Both operations must run inside the caller's unit of work. `reserve_stock`
    raises on the first line that cannot be served; the caller's rollback then
    undoes the decrements already issued for earlier lines.
    """

    async def reserve_stock(self, lines: Iterable[StockLine], uow: "AbstractUnitOfWork") -> None:
        for line in lines:
            product = await uow.products.get_by_id(line.product_id)
            if product is None or not product.is_active:
                raise ProductUnavailableException(line.product_id)
            variant = product.find_variant(line.variant_sku)
            if variant is None:
                raise VariantNotFoundException(line.product_id, line.variant_sku)
            if variant.stock < line.quantity:
                raise InsufficientStockException(
                    line.product_id, line.variant_sku, line.quantity, available=variant.stock
                )
            # conditional UPDATE; a concurrent reservation may have taken the units meanwhile
            taken = await uow.products.decrement_stock(line.product_id, line.variant_sku, line.quantity)
            if not taken:
                raise InsufficientStockException(line.product_id, line.variant_sku, line.quantity)
            variant.stock -= line.quantity

    async def release_stock(self, lines: Iterable[StockLine], uow: "AbstractUnitOfWork") -> List[SkippedRelease]:
        """Give stock back; lines whose product or variant vanished are skipped and reported."""
        skipped: List[SkippedRelease] = []
        for line in lines:
            product = await uow.products.get_by_id(line.product_id)
            if product is None:
                skipped.append(SkippedRelease(line.product_id, line.variant_sku, line.quantity, "product_missing"))
                continue
            if not line.variant_sku or product.find_variant(line.variant_sku, active_only=False) is None:
                skipped.append(SkippedRelease(line.product_id, line.variant_sku, line.quantity, "variant_missing"))
                continue
            if not await uow.products.increment_stock(line.product_id, line.variant_sku, line.quantity):
                skipped.append(SkippedRelease(line.product_id, line.variant_sku, line.quantity, "variant_missing"))
        return skipped
