"""
Checkout, order and cart DTOs.
"""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import AnyHttpUrl, BaseModel, Field, field_serializer

from domain.order.entity import DeliveryAddress, Order, OrderItem, OrderPaymentStatus, OrderStatus
from domain.payment.entity import PaymentMethod
from .payments import PaymentDTO, _utc_z


class DeliveryAddressDTO(BaseModel):
    full_name: str = Field(min_length=1, max_length=120)
    phone: str = Field(pattern=r"^\+?\d{9,15}$")
    city: str = Field(min_length=1, max_length=80)
    address: str = Field(min_length=1, max_length=255)

    def to_domain(self) -> DeliveryAddress:
        return DeliveryAddress(full_name=self.full_name, phone=self.phone, city=self.city, address=self.address)


class CheckoutRequest(BaseModel):
    payment_method: PaymentMethod
    delivery_address: DeliveryAddressDTO
    return_url: Optional[AnyHttpUrl] = None
    description: Optional[str] = Field(default=None, max_length=255)


class OrderItemDTO(BaseModel):
    product_id: str
    name: str
    unit_price: int
    variant: dict
    quantity: int
    assembly_selected: bool
    assembly_unit_price: int
    line_total: int

    @classmethod
    def from_entity(cls, item: OrderItem) -> "OrderItemDTO":
        return cls(
            product_id=item.product_id,
            name=item.name,
            unit_price=item.unit_price,
            variant=item.variant_snapshot,
            quantity=item.quantity,
            assembly_selected=item.assembly_selected,
            assembly_unit_price=item.assembly_unit_price,
            line_total=item.line_total,
        )


class OrderDTO(BaseModel):
    id: str
    order_number: str
    user_id: str
    items: List[OrderItemDTO]
    subtotal: int
    vat_amount: int
    assembly_total: int
    delivery_price: int
    grand_total: int
    currency: str
    payment_method: str
    payment_status: OrderPaymentStatus
    status: OrderStatus
    payment_id: Optional[str] = None
    delivery_address: DeliveryAddressDTO
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_serializer("created_at", "updated_at")
    def _ser_dt(self, v: Optional[datetime]) -> Optional[str]:
        return _utc_z(v)

    @classmethod
    def from_entity(cls, order: Order) -> "OrderDTO":
        return cls(
            id=order.id,
            order_number=order.order_number,
            user_id=order.user_id,
            items=[OrderItemDTO.from_entity(i) for i in order.items],
            subtotal=order.subtotal,
            vat_amount=order.vat_amount,
            assembly_total=order.assembly_total,
            delivery_price=order.delivery_price,
            grand_total=order.grand_total,
            currency=order.currency,
            payment_method=order.payment_method,
            payment_status=order.payment_status,
            status=order.status,
            payment_id=order.payment_id,
            delivery_address=DeliveryAddressDTO.model_validate(order.delivery_address.to_dict()),
            created_at=order.created_at,
            updated_at=order.updated_at,
        )


class CheckoutResultDTO(BaseModel):
    order: OrderDTO
    payment: PaymentDTO
    payment_url: Optional[str] = None


class CartItemDTO(BaseModel):
    product_id: str
    variant_sku: str
    quantity: int
    assembly_selected: bool = False


class CartDTO(BaseModel):
    id: str
    user_id: Optional[str] = None
    guest_token: Optional[str] = None
    items: List[CartItemDTO] = Field(default_factory=list)


class MergeCartRequest(BaseModel):
    guest_token: str = Field(min_length=1)
