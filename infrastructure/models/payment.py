"""
Payment ledger tables - ORM mapping only; business rules live in domain.payment.entity
"""
from sqlalchemy import BigInteger, Column, DateTime, Index, JSON, String
from datetime import datetime, timezone

from .base import Base


class PaymentModel(Base):
    __tablename__ = "payments"

    id = Column(String(36), primary_key=True)
    user_id = Column(String(64), nullable=False, index=True)
    order_id = Column(String(36), nullable=False, index=True)

    method = Column(String(20), nullable=False, comment="payme/click/uzum")
    transaction_id = Column(String(128), nullable=True, unique=True, comment="provider transaction id")

    amount = Column(BigInteger, nullable=False)
    currency = Column(String(3), nullable=False, default="UZS")

    status = Column(
        String(20),
        nullable=False,
        default="pending",
        comment="pending/processing/completed/failed/refunded",
    )
    provider_data = Column(JSON, nullable=True)

    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    completed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_payments_status_updated_at", "status", "updated_at"),
    )

    def __repr__(self):
        return f"<Payment(id={self.id}, method={self.method}, status={self.status})>"


class ProviderTransactionModel(Base):
    """Webhook provider transaction record (Uzum)"""
    __tablename__ = "provider_transactions"

    id = Column(String(36), primary_key=True)
    transaction_id = Column(String(128), nullable=False, unique=True)
    service_id = Column(String(64), nullable=False)
    account = Column(String(128), nullable=False, index=True, comment="merchant transaction id")
    amount = Column(BigInteger, nullable=False)
    status = Column(String(20), nullable=False, default="PENDING")
    payment_id = Column(String(36), nullable=True, index=True)

    trans_time = Column(DateTime(timezone=True), nullable=True)
    confirm_time = Column(DateTime(timezone=True), nullable=True)
    reverse_time = Column(DateTime(timezone=True), nullable=True)

    payment_source = Column(String(64), nullable=True)
    phone = Column(String(32), nullable=True)
    card_type = Column(String(32), nullable=True)
    processing_reference_number = Column(String(128), nullable=True)

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
