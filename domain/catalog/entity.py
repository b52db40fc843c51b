"""
Catalog entities read by checkout. The catalog itself is owned elsewhere;
this core only reads prices/stock and writes variant stock counters.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from domain.common.exceptions import DomainValidationException


@dataclass
class Variant:
    sku: str
    price: int
    stock: int = 0
    is_active: bool = True
    color: Optional[str] = None
    size: Optional[str] = None
    material: Optional[str] = None
    id: Optional[str] = None

    def __post_init__(self):
        if not self.sku:
            raise DomainValidationException("sku is required", field="sku")
        if self.price < 0:
            raise DomainValidationException(f"Invalid variant price: {self.price}", field="price")
        if self.stock < 0:
            raise DomainValidationException(f"Invalid variant stock: {self.stock}", field="stock")


@dataclass
class Product:
    id: str
    name: str
    is_active: bool = True
    assembly_available: bool = False
    assembly_price: int = 0
    variants: List[Variant] = field(default_factory=list)

    def __post_init__(self):
        skus = [v.sku for v in self.variants]
        if len(skus) != len(set(skus)):
            raise DomainValidationException("sku must be unique within a product", field="variants")
        if self.assembly_price < 0:
            raise DomainValidationException("assembly_price must be >= 0", field="assembly_price")

    def find_variant(self, sku: str, *, active_only: bool = True) -> Optional[Variant]:
        for variant in self.variants:
            if variant.sku == sku and (variant.is_active or not active_only):
                return variant
        return None

    @property
    def total_stock(self) -> int:
        return sum(v.stock for v in self.variants if v.is_active)

    def assembly_fee_for(self, assembly_selected: bool) -> int:
        """Per-unit assembly fee; charged only when the buyer asked and the product offers it."""
        if assembly_selected and self.assembly_available:
            return self.assembly_price or 0
        return 0
