"""
Cart repository (SQLAlchemy)
"""
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from domain.cart.entity import Cart, CartItem
from domain.cart.repository import CartRepository
from infrastructure.models.cart import CartItemModel, CartModel


class SQLAlchemyCartRepository(CartRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: CartModel) -> Cart:
        return Cart(
            id=model.id,
            user_id=model.user_id,
            guest_token=model.guest_token,
            items=[
                CartItem(
                    product_id=i.product_id,
                    variant_sku=i.variant_sku,
                    quantity=i.quantity,
                    assembly_selected=i.assembly_selected,
                )
                for i in model.items
            ],
            updated_at=model.updated_at,
        )

    @staticmethod
    def _item_models(cart: Cart) -> list[CartItemModel]:
        return [
            CartItemModel(
                product_id=i.product_id,
                variant_sku=i.variant_sku,
                quantity=i.quantity,
                assembly_selected=i.assembly_selected,
            )
            for i in cart.items
        ]

    async def _get_one(self, *criteria) -> Optional[CartModel]:
        result = await self.session.execute(
            select(CartModel).where(*criteria).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_by_user(self, user_id: str) -> Optional[Cart]:
        model = await self._get_one(CartModel.user_id == user_id)
        return self._to_entity(model) if model else None

    async def get_by_guest(self, guest_token: str) -> Optional[Cart]:
        model = await self._get_one(CartModel.guest_token == guest_token)
        return self._to_entity(model) if model else None

    async def add(self, cart: Cart) -> Cart:
        model = CartModel(
            id=cart.id,
            user_id=cart.user_id,
            guest_token=cart.guest_token,
            items=self._item_models(cart),
        )
        self.session.add(model)
        await self.session.flush()
        return self._to_entity(model)

    async def save(self, cart: Cart) -> Cart:
        model = await self._get_one(CartModel.id == cart.id)
        if model is None:
            return await self.add(cart)
        model.user_id = cart.user_id
        model.guest_token = cart.guest_token
        # delete-orphan cascade removes the previous rows
        model.items = self._item_models(cart)
        await self.session.flush()
        return self._to_entity(model)

    async def delete(self, cart_id: str) -> None:
        model = await self._get_one(CartModel.id == cart_id)
        if model is not None:
            await self.session.delete(model)
            await self.session.flush()
