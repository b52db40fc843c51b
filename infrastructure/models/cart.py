"""
Cart tables
"""
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from .base import Base


class CartModel(Base):
    __tablename__ = "carts"

    id = Column(String(36), primary_key=True)
    user_id = Column(String(64), nullable=True, unique=True, comment="owner when authenticated")
    guest_token = Column(String(128), nullable=True, unique=True, comment="owner when anonymous")
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    items = relationship(
        "CartItemModel",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="CartItemModel.id",
    )


class CartItemModel(Base):
    __tablename__ = "cart_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    cart_id = Column(String(36), ForeignKey("carts.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(String(36), nullable=False)
    variant_sku = Column(String(100), nullable=False)
    quantity = Column(Integer, nullable=False)
    assembly_selected = Column(Boolean, nullable=False, default=False)
