"""
Uzum merchant webhook payloads (snake_case, amounts in tiyin).
"""
from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class UzumWebhookBase(BaseModel):
    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    service_id: str = Field(min_length=1)
    timestamp: int


class UzumCheckRequest(UzumWebhookBase):
    params: dict[str, Any]

    @property
    def account(self) -> str:
        return str(self.params.get("account") or "")


class UzumCreateRequest(UzumCheckRequest):
    trans_id: str = Field(min_length=1)
    amount: int = Field(gt=0)


class UzumConfirmRequest(UzumWebhookBase):
    trans_id: str = Field(min_length=1)
    payment_source: Optional[str] = None
    phone: Optional[str] = None
    card_type: Optional[str] = None
    processing_reference_number: Optional[str] = None


class UzumTransRequest(UzumWebhookBase):
    """Body of the reverse and status phases."""
    trans_id: str = Field(min_length=1)
