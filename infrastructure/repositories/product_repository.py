"""
Catalog repository (SQLAlchemy)
"""
from typing import Iterable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from domain.catalog.entity import Product, Variant
from domain.catalog.repository import ProductRepository
from infrastructure.models.catalog import ProductModel, ProductVariantModel


class SQLAlchemyProductRepository(ProductRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: ProductModel) -> Product:
        return Product(
            id=model.id,
            name=model.name,
            is_active=model.is_active,
            assembly_available=model.assembly_available,
            assembly_price=model.assembly_price or 0,
            variants=[
                Variant(
                    id=str(v.id),
                    sku=v.sku,
                    price=v.price,
                    stock=v.stock,
                    is_active=v.is_active,
                    color=v.color,
                    size=v.size,
                    material=v.material,
                )
                for v in model.variants
            ],
        )

    def _to_model(self, entity: Product) -> ProductModel:
        return ProductModel(
            id=entity.id,
            name=entity.name,
            is_active=entity.is_active,
            assembly_available=entity.assembly_available,
            assembly_price=entity.assembly_price,
            variants=[
                ProductVariantModel(
                    sku=v.sku,
                    price=v.price,
                    stock=v.stock,
                    is_active=v.is_active,
                    color=v.color,
                    size=v.size,
                    material=v.material,
                )
                for v in entity.variants
            ],
        )

    async def add(self, product: Product) -> Product:
        model = self._to_model(product)
        self.session.add(model)
        await self.session.flush()
        return self._to_entity(model)

    async def get_by_id(self, product_id: str) -> Optional[Product]:
        # stock is changed with bulk UPDATEs, so always refresh identity-mapped rows
        result = await self.session.execute(
            select(ProductModel)
            .where(ProductModel.id == product_id)
            .execution_options(populate_existing=True)
        )
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def get_many(self, product_ids: Iterable[str]) -> List[Product]:
        ids = list(dict.fromkeys(product_ids))
        if not ids:
            return []
        result = await self.session.execute(
            select(ProductModel)
            .where(ProductModel.id.in_(ids))
            .execution_options(populate_existing=True)
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def decrement_stock(self, product_id: str, sku: str, quantity: int) -> bool:
        stmt = (
            update(ProductVariantModel)
            .where(
                ProductVariantModel.product_id == product_id,
                ProductVariantModel.sku == sku,
                ProductVariantModel.is_active.is_(True),
                ProductVariantModel.stock >= quantity,
            )
            .values(stock=ProductVariantModel.stock - quantity)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def increment_stock(self, product_id: str, sku: str, quantity: int) -> bool:
        stmt = (
            update(ProductVariantModel)
            .where(ProductVariantModel.product_id == product_id, ProductVariantModel.sku == sku)
            .values(stock=ProductVariantModel.stock + quantity)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1
