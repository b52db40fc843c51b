"""
Checkout pricing: line subtotals, assembly fees, VAT and delivery.

All amounts are integers; VAT is rounded half-up to a whole unit.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, List, Mapping, Protocol

from domain.catalog.entity import Product
from domain.common.exceptions import (
    CartEmptyException,
    InsufficientStockException,
    ProductUnavailableException,
    VariantNotFoundException,
)
from .entity import OrderItem


class PricedLine(Protocol):
    product_id: str
    variant_sku: str
    quantity: int
    assembly_selected: bool


@dataclass(frozen=True)
class PricingPolicy:
    vat_percent: Decimal = Decimal("12")
    delivery_fee: int = 50_000
    free_delivery_threshold: int = 10_000_000

    def vat_for(self, subtotal: int) -> int:
        vat = Decimal(subtotal) * Decimal(self.vat_percent) / Decimal(100)
        return int(vat.quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    def delivery_for(self, subtotal: int) -> int:
        # waived at/above the threshold
        return 0 if subtotal >= self.free_delivery_threshold else self.delivery_fee


@dataclass(frozen=True)
class OrderQuote:
    items: List[OrderItem]
    subtotal: int
    vat_amount: int
    assembly_total: int
    delivery_price: int

    @property
    def grand_total(self) -> int:
        return self.subtotal + self.vat_amount + self.assembly_total + self.delivery_price


def price_lines(
    lines: Iterable[PricedLine],
    products: Mapping[str, Product],
    policy: PricingPolicy,
) -> OrderQuote:
    """Validate every line against the live catalog and freeze it into order items."""
    items: List[OrderItem] = []
    subtotal = 0
    assembly_total = 0
    for line in lines:
        product = products.get(line.product_id)
        if product is None or not product.is_active:
            raise ProductUnavailableException(line.product_id)
        variant = product.find_variant(line.variant_sku)
        if variant is None:
            raise VariantNotFoundException(line.product_id, line.variant_sku)
        if variant.stock < line.quantity:
            raise InsufficientStockException(
                line.product_id, line.variant_sku, line.quantity, available=variant.stock
            )

        assembly_unit = product.assembly_fee_for(line.assembly_selected)
        subtotal += variant.price * line.quantity
        assembly_total += assembly_unit * line.quantity
        items.append(
            OrderItem(
                product_id=product.id,
                name=product.name,
                unit_price=variant.price,
                variant_sku=variant.sku,
                variant_color=variant.color,
                variant_size=variant.size,
                quantity=line.quantity,
                assembly_selected=line.assembly_selected,
                assembly_unit_price=assembly_unit,
            )
        )

    if not items:
        raise CartEmptyException()

    return OrderQuote(
        items=items,
        subtotal=subtotal,
        vat_amount=policy.vat_for(subtotal),
        assembly_total=assembly_total,
        delivery_price=policy.delivery_for(subtotal),
    )
