"""
Uzum adapter: locally built checkout URL, SHA-256 signatures, Basic-Auth webhooks.

Amounts travel in tiyin (x100).
"""
from __future__ import annotations

import uuid
from decimal import InvalidOperation
from typing import Any, Mapping, Optional
from urllib.parse import urlencode

import httpx

from application.dtos.payments import CallbackResult, CreatePayment, PaymentIntent, RefundResult
from core.settings import UzumSettings
from domain.payment.entity import PaymentMethod, PaymentStatus
from infrastructure.external.payments.base import BasePaymentClient, from_subunits, to_subunits
from infrastructure.external.payments.exceptions import PaymentProviderError, PaymentSignatureError
from shared.crypto import constant_time_equals, generate_opaque_id, sha256, verify_basic_auth


class UzumClient(BasePaymentClient):
    method = PaymentMethod.UZUM

    def __init__(
        self,
        config: UzumSettings,
        *,
        timeouts: Optional[dict[str, float]] = None,
        retry: Optional[dict[str, Any]] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        super().__init__(timeouts=timeouts, retry=retry, http_client=http_client)
        self._config = config

    def _headers(self, signature: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._config.api_key or ''}",
            "X-Signature": signature,
            "Accept": "application/json",
        }

    def verify_webhook_auth(self, authorization: Optional[str]) -> bool:
        return verify_basic_auth(authorization, self._config.username or "", self._config.password or "")

    async def create_payment(self, req: CreatePayment) -> PaymentIntent:  # type: ignore[override]
        self._require(merchant_id=self._config.merchant_id, secret_key=self._config.secret_key)
        merchant_trans_id = req.merchant_trans_id or generate_opaque_id()
        amount = to_subunits(req.amount)
        signature = sha256(f"{self._config.merchant_id}{amount}{merchant_trans_id}{self._config.secret_key}")
        params = {
            "merchant_id": self._config.merchant_id,
            "merchant_trans_id": merchant_trans_id,
            "amount": amount,
        }
        if self._config.service_id:
            params["service_id"] = self._config.service_id
        params["return_url"] = req.return_url
        params["signature"] = signature
        url = f"{self._config.base_url}/merchant/pay?{urlencode(params)}"
        self._log("uzum_payment_url_built", order_id=req.order_id, transaction_id=merchant_trans_id)
        return PaymentIntent(transaction_id=merchant_trans_id, payment_url=url)

    def process_callback(self, payload: Mapping[str, Any], headers: Mapping[str, str]) -> CallbackResult:  # type: ignore[override]
        transaction_id = payload.get("merchant_transaction_id") or payload.get("transaction_id")
        amount = payload.get("amount")
        given = payload.get("signature")
        if not transaction_id or amount is None or not given or not self._config.secret_key:
            raise PaymentSignatureError("uzum callback is not signed", provider=self.provider)

        expected = sha256(f"{transaction_id}{amount}{self._config.merchant_id or ''}{self._config.secret_key}")
        if not constant_time_equals(expected, str(given).lower()):
            raise PaymentSignatureError("uzum callback signature mismatch", provider=self.provider)

        try:
            parsed_amount = from_subunits(amount)
        except (InvalidOperation, ValueError) as exc:
            raise PaymentProviderError("uzum sent an invalid amount", provider=self.provider) from exc

        provider_status = str(payload.get("status") or "").upper()
        return CallbackResult(
            status=self._map_status(provider_status),
            transaction_id=str(transaction_id),
            amount=parsed_amount,
            provider_status=provider_status,
        )

    async def check_status(self, transaction_id: str) -> PaymentStatus:  # type: ignore[override]
        self._require(merchant_id=self._config.merchant_id, secret_key=self._config.secret_key)
        signature = sha256(f"{self._config.merchant_id}{transaction_id}{self._config.secret_key}")
        response = await self._send(
            "check_status",
            lambda client: client.get(
                f"{self._config.base_url}/api/merchant/check-status",
                params={"merchant_id": self._config.merchant_id, "merchant_trans_id": transaction_id},
                headers=self._headers(signature),
            ),
        )
        body = self._json(response, "check_status")
        data = body.get("data") or {}
        return self._map_status(str(data.get("status") or "").upper())

    async def refund(self, transaction_id: str, amount: Optional[int] = None) -> RefundResult:  # type: ignore[override]
        self._require(merchant_id=self._config.merchant_id, secret_key=self._config.secret_key)
        if amount is None:
            raise PaymentProviderError("uzum refunds require an amount", provider=self.provider)
        refund_id = str(uuid.uuid4())
        subunits = to_subunits(amount)
        signature = sha256(f"{self._config.merchant_id}{transaction_id}{subunits}{refund_id}{self._config.secret_key}")
        body = {
            "merchant_id": self._config.merchant_id,
            "merchant_trans_id": transaction_id,
            "amount": subunits,
            "refund_id": refund_id,
        }
        response = await self._send(
            "refund",
            lambda client: client.post(
                f"{self._config.base_url}/api/merchant/refund",
                json=body,
                headers=self._headers(signature),
            ),
        )
        result = self._json(response, "refund")
        if result.get("success") is False:
            raise PaymentProviderError(
                str(result.get("message") or "uzum refund rejected"),
                provider=self.provider,
                provider_code=str(result.get("errorCode") or ""),
            )
        return RefundResult(refund_id=refund_id, status=PaymentStatus.REFUNDED)
