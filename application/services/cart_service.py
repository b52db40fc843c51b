"""Cart resolution and guest-to-user merge."""
from __future__ import annotations

from typing import Callable, Optional

from application.dtos.checkout import CartDTO, CartItemDTO
from core.logging_config import get_logger
from domain.cart.entity import Cart, CartItem
from domain.common.exceptions import DomainValidationException
from domain.common.unit_of_work import AbstractUnitOfWork


logger = get_logger(__name__)


def _to_dto(cart: Cart) -> CartDTO:
    return CartDTO(
        id=cart.id,
        user_id=cart.user_id,
        guest_token=cart.guest_token,
        items=[
            CartItemDTO(
                product_id=i.product_id,
                variant_sku=i.variant_sku,
                quantity=i.quantity,
                assembly_selected=i.assembly_selected,
            )
            for i in cart.items
        ],
    )


async def resolve_cart(
    uow: AbstractUnitOfWork,
    *,
    user_id: Optional[str] = None,
    guest_token: Optional[str] = None,
) -> Cart:
    """Return the single cart for an identity, creating it on first access."""
    if bool(user_id) == bool(guest_token):
        raise DomainValidationException("Exactly one of user or guest identity is required", field="identity")
    cart = await (uow.carts.get_by_user(user_id) if user_id else uow.carts.get_by_guest(guest_token))
    if cart is None:
        cart = await uow.carts.add(Cart.for_owner(user_id=user_id, guest_token=guest_token))
    return cart


class CartService:
    def __init__(self, uow_factory: Callable[..., AbstractUnitOfWork]):
        self._uow_factory = uow_factory

    async def resolve(self, *, user_id: Optional[str] = None, guest_token: Optional[str] = None) -> CartDTO:
        async with self._uow_factory() as uow:
            cart = await resolve_cart(uow, user_id=user_id, guest_token=guest_token)
        return _to_dto(cart)

    async def add_item(
        self,
        item: CartItemDTO,
        *,
        user_id: Optional[str] = None,
        guest_token: Optional[str] = None,
    ) -> CartDTO:
        async with self._uow_factory() as uow:
            cart = await resolve_cart(uow, user_id=user_id, guest_token=guest_token)
            cart.add_item(
                CartItem(
                    product_id=item.product_id,
                    variant_sku=item.variant_sku,
                    quantity=item.quantity,
                    assembly_selected=item.assembly_selected,
                )
            )
            await uow.carts.save(cart)
        return _to_dto(cart)

    async def merge_guest_cart(self, guest_token: str, user_id: str) -> CartDTO:
        """Fold the guest cart into the user's cart; the guest cart is gone afterwards."""
        async with self._uow_factory() as uow:
            guest = await uow.carts.get_by_guest(guest_token)
            user_cart = await uow.carts.get_by_user(user_id)
            if guest is None:
                cart = user_cart or await uow.carts.add(Cart.for_owner(user_id=user_id))
            elif user_cart is None:
                guest.assign_to_user(user_id)
                cart = await uow.carts.save(guest)
            else:
                user_cart.merge_from(guest)
                await uow.carts.delete(guest.id)
                cart = await uow.carts.save(user_cart)

        logger.info(
            "cart_merged",
            user_id=user_id,
            had_guest_cart=guest is not None,
            items=len(cart.items),
        )
        return _to_dto(cart)
