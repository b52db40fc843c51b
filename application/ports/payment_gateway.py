"""
Payment provider port (application/ports) exposing a replaceable protocol.

Application depends on this Protocol; infrastructure implements one adapter per network.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional, Protocol, runtime_checkable

from application.dtos.payments import CallbackResult, CreatePayment, PaymentIntent, RefundResult
from domain.payment.entity import PaymentMethod, PaymentStatus


@runtime_checkable
class PaymentProvider(Protocol):
    """Capability set shared by every provider adapter.

    Network failures surface as PaymentRecoverableError (retryable); explicit
    provider rejections as PaymentProviderError; bad callback credentials or
    signatures as PaymentSignatureError.
    """

    method: PaymentMethod

    async def create_payment(self, req: CreatePayment) -> PaymentIntent: ...

    def process_callback(self, payload: Mapping[str, Any], headers: Mapping[str, str]) -> CallbackResult: ...

    async def check_status(self, transaction_id: str) -> PaymentStatus: ...

    async def refund(self, transaction_id: str, amount: Optional[int] = None) -> RefundResult: ...

    async def aclose(self) -> None: ...


@dataclass
class PaymentGateways:
    """One adapter per supported method, resolved by `for_method`."""

    payme: PaymentProvider
    click: PaymentProvider
    uzum: PaymentProvider

    def for_method(self, method: PaymentMethod | str) -> PaymentProvider:
        method = PaymentMethod(method)
        if method == PaymentMethod.PAYME:
            return self.payme
        if method == PaymentMethod.CLICK:
            return self.click
        if method == PaymentMethod.UZUM:
            return self.uzum
        raise ValueError(f"Unsupported payment method: {method}")

    async def aclose(self) -> None:
        for gateway in (self.payme, self.click, self.uzum):
            await gateway.aclose()
