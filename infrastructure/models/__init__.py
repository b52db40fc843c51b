"""Infrastructure models package exports."""
from .base import Base, metadata
from .catalog import ProductModel, ProductVariantModel
from .cart import CartModel, CartItemModel
from .order import OrderModel, OrderItemModel
from .payment import PaymentModel, ProviderTransactionModel

__all__ = [
    "Base",
    "metadata",
    "ProductModel",
    "ProductVariantModel",
    "CartModel",
    "CartItemModel",
    "OrderModel",
    "OrderItemModel",
    "PaymentModel",
    "ProviderTransactionModel",
]
