"""
Order repository (SQLAlchemy)
"""
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from domain.order.entity import DeliveryAddress, Order, OrderItem
from domain.order.repository import OrderRepository
from infrastructure.models.order import OrderItemModel, OrderModel


class SQLAlchemyOrderRepository(OrderRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: OrderModel) -> Order:
        address = model.delivery_address or {}
        return Order(
            id=model.id,
            order_number=model.order_number,
            user_id=model.user_id,
            items=[
                OrderItem(
                    product_id=i.product_id,
                    name=i.name_snapshot,
                    unit_price=i.price_snapshot,
                    variant_sku=i.variant_sku,
                    variant_color=i.variant_color,
                    variant_size=i.variant_size,
                    quantity=i.quantity,
                    assembly_selected=i.assembly_selected,
                    assembly_unit_price=i.assembly_price_snapshot,
                )
                for i in model.items
            ],
            subtotal=model.subtotal,
            vat_amount=model.vat_amount,
            assembly_total=model.assembly_total,
            delivery_price=model.delivery_price,
            grand_total=model.grand_total,
            currency=model.currency,
            payment_method=model.payment_method,
            delivery_address=DeliveryAddress(
                full_name=address.get("full_name", ""),
                phone=address.get("phone", ""),
                city=address.get("city", ""),
                address=address.get("address", ""),
            ),
            payment_status=model.payment_status,
            status=model.status,
            payment_id=model.payment_id,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _to_model(self, entity: Order) -> OrderModel:
        return OrderModel(
            id=entity.id,
            order_number=entity.order_number,
            user_id=entity.user_id,
            subtotal=entity.subtotal,
            vat_amount=entity.vat_amount,
            assembly_total=entity.assembly_total,
            delivery_price=entity.delivery_price,
            grand_total=entity.grand_total,
            currency=entity.currency,
            payment_method=entity.payment_method,
            payment_status=entity.payment_status.value,
            status=entity.status.value,
            payment_id=entity.payment_id,
            delivery_address=entity.delivery_address.to_dict(),
            created_at=entity.created_at,
            updated_at=entity.updated_at,
            items=[
                OrderItemModel(
                    product_id=i.product_id,
                    name_snapshot=i.name,
                    price_snapshot=i.unit_price,
                    variant_sku=i.variant_sku,
                    variant_color=i.variant_color,
                    variant_size=i.variant_size,
                    quantity=i.quantity,
                    assembly_selected=i.assembly_selected,
                    assembly_price_snapshot=i.assembly_unit_price,
                    total_item_price=i.line_total,
                )
                for i in entity.items
            ],
        )

    async def add(self, order: Order) -> Order:
        model = self._to_model(order)
        self.session.add(model)
        await self.session.flush()
        return self._to_entity(model)

    async def get_by_id(self, order_id: str) -> Optional[Order]:
        result = await self.session.execute(
            select(OrderModel).where(OrderModel.id == order_id).execution_options(populate_existing=True)
        )
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def list_by_user(self, user_id: str, skip: int = 0, limit: int = 100) -> List[Order]:
        result = await self.session.execute(
            select(OrderModel)
            .where(OrderModel.user_id == user_id)
            .order_by(OrderModel.created_at.desc())
            .offset(skip)
            .limit(limit)
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def update(self, order: Order) -> Order:
        model = await self.session.get(OrderModel, order.id)
        if model is None:
            raise ValueError(f"Order {order.id} does not exist")
        model.payment_method = order.payment_method
        model.payment_id = order.payment_id
        model.payment_status = order.payment_status.value
        model.status = order.status.value
        model.updated_at = order.updated_at
        await self.session.flush()
        return self._to_entity(model)
