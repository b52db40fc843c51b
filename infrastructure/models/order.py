"""
Order tables. Item rows are snapshots and are written once.
"""
from datetime import datetime, timezone

from sqlalchemy import BigInteger, Boolean, Column, DateTime, ForeignKey, Integer, JSON, String
from sqlalchemy.orm import relationship

from .base import Base


class OrderModel(Base):
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True)
    order_number = Column(String(32), nullable=False, unique=True)
    user_id = Column(String(64), nullable=False, index=True)

    subtotal = Column(BigInteger, nullable=False)
    vat_amount = Column(BigInteger, nullable=False)
    assembly_total = Column(BigInteger, nullable=False)
    delivery_price = Column(BigInteger, nullable=False)
    grand_total = Column(BigInteger, nullable=False)
    currency = Column(String(3), nullable=False)

    payment_method = Column(String(20), nullable=False)
    payment_status = Column(String(20), nullable=False, default="pending")
    status = Column(String(20), nullable=False, default="created", index=True, comment="fulfillment status")
    payment_id = Column(String(36), nullable=True, index=True)
    delivery_address = Column(JSON, nullable=False)

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False, index=True)
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    items = relationship(
        "OrderItemModel",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="OrderItemModel.id",
    )


class OrderItemModel(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(36), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(String(36), nullable=False)
    name_snapshot = Column(String(255), nullable=False)
    price_snapshot = Column(BigInteger, nullable=False)
    variant_sku = Column(String(100), nullable=False)
    variant_color = Column(String(100), nullable=True)
    variant_size = Column(String(100), nullable=True)
    quantity = Column(Integer, nullable=False)
    assembly_selected = Column(Boolean, nullable=False, default=False)
    assembly_price_snapshot = Column(BigInteger, nullable=False, default=0)
    total_item_price = Column(BigInteger, nullable=False)
