"""
Payment DTOs (Pydantic v2) used at application boundaries.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import AnyHttpUrl, BaseModel, ConfigDict, Field, TypeAdapter, field_serializer, field_validator

from domain.payment.entity import Payment, PaymentMethod, PaymentStatus


_HTTP_URL = TypeAdapter(AnyHttpUrl)


def _utc_z(dt: Optional[datetime]) -> Optional[str]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


class CreatePayment(BaseModel):
    """Adapter input. `merchant_trans_id` is generated by the orchestrator when the provider needs one."""
    amount: int = Field(gt=0)
    order_id: str = Field(min_length=1)
    return_url: str
    description: Optional[str] = None
    phone: Optional[str] = None
    merchant_trans_id: Optional[str] = None
    currency: str = "UZS"

    @field_validator("return_url")
    @classmethod
    def _well_formed_url(cls, v: str) -> str:
        _HTTP_URL.validate_python(v)
        return v


class CreatePaymentRequest(BaseModel):
    """POST create-payment body."""
    amount: int = Field(gt=0)
    order_id: str = Field(min_length=1)
    method: PaymentMethod
    return_url: AnyHttpUrl
    description: Optional[str] = Field(default=None, max_length=255)
    phone: Optional[str] = Field(default=None, pattern=r"^\+?\d{9,15}$")


class PaymentIntent(BaseModel):
    transaction_id: str
    payment_url: str
    payment_id: Optional[str] = None


class CallbackResult(BaseModel):
    """Verified callback outcome; the orchestrator fills in the ledger fields."""
    status: PaymentStatus
    transaction_id: str
    amount: Optional[int] = None
    provider_status: Optional[str] = None
    data: dict[str, Any] = Field(default_factory=dict)

    payment_id: Optional[str] = None
    payment_status: Optional[PaymentStatus] = None
    applied: bool = False


class RefundPaymentRequest(BaseModel):
    payment_id: str = Field(min_length=1)


class RefundResult(BaseModel):
    refund_id: str
    status: PaymentStatus


class PaymentStatusResponse(BaseModel):
    transaction_id: str
    method: PaymentMethod
    status: PaymentStatus


class PaymentDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    order_id: str
    amount: int
    currency: str
    method: PaymentMethod
    status: PaymentStatus
    transaction_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @field_serializer("created_at", "updated_at", "completed_at")
    def _ser_dt(self, v: Optional[datetime]) -> Optional[str]:
        return _utc_z(v)

    @classmethod
    def from_entity(cls, payment: Payment) -> "PaymentDTO":
        return cls.model_validate(payment)
