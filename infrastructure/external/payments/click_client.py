"""
Click adapter: signed redirect URLs and MD5-signed REST calls.

Amounts are exchanged in whole so'm. Callback signatures are
MD5(click_trans_id + secret + merchant_trans_id + amount).
"""
from __future__ import annotations

from datetime import datetime, timezone
from decimal import InvalidOperation
from typing import Any, Mapping, Optional
from urllib.parse import urlencode

import httpx

from application.dtos.payments import CallbackResult, CreatePayment, PaymentIntent, RefundResult
from core.settings import ClickSettings
from domain.payment.entity import PaymentMethod, PaymentStatus
from infrastructure.external.payments.base import BasePaymentClient, parse_amount
from infrastructure.external.payments.exceptions import PaymentProviderError, PaymentSignatureError
from shared.codes.payment_codes import ClickError
from shared.crypto import constant_time_equals, generate_opaque_id, md5

# Click `action` values
ACTION_PREPARE = 0
ACTION_COMPLETE = 1


def sign_time(now: Optional[datetime] = None) -> str:
    return (now or datetime.now(timezone.utc)).strftime("%Y%m%d%H%M%S")


class ClickClient(BasePaymentClient):
    method = PaymentMethod.CLICK

    def __init__(
        self,
        config: ClickSettings,
        *,
        timeouts: Optional[dict[str, float]] = None,
        retry: Optional[dict[str, Any]] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        super().__init__(timeouts=timeouts, retry=retry, http_client=http_client)
        self._config = config

    def _sign(self, *parts: Any) -> str:
        return md5(";".join("" if p is None else str(p) for p in parts))

    def _auth_headers(self, timestamp: str, sign: str) -> dict[str, str]:
        return {
            "Accept": "application/json",
            "Auth": f"{self._config.merchant_user_id or ''}:{sign}:{timestamp}",
        }

    async def create_payment(self, req: CreatePayment) -> PaymentIntent:  # type: ignore[override]
        self._require(service_id=self._config.service_id, secret_key=self._config.secret_key)
        merchant_trans_id = req.merchant_trans_id or generate_opaque_id()
        timestamp = sign_time()
        signature = self._sign(
            self._config.service_id, "", merchant_trans_id, req.amount, timestamp, self._config.secret_key
        )
        query = urlencode({
            "sign_time": timestamp,
            "sign_string": signature,
            "return_url": req.return_url,
        })
        url = (
            f"{self._config.base_url}/invoice/pay/{self._config.service_id}"
            f"/{merchant_trans_id}/{req.amount}/?{query}"
        )
        self._log("click_payment_url_built", order_id=req.order_id, transaction_id=merchant_trans_id)
        return PaymentIntent(transaction_id=merchant_trans_id, payment_url=url)

    def process_callback(self, payload: Mapping[str, Any], headers: Mapping[str, str]) -> CallbackResult:  # type: ignore[override]
        click_trans_id = payload.get("click_trans_id")
        merchant_trans_id = payload.get("merchant_trans_id")
        amount = payload.get("amount")
        given = payload.get("sign_string")
        if not click_trans_id or not merchant_trans_id or amount is None or not given or not self._config.secret_key:
            raise PaymentSignatureError("click callback is not signed", provider=self.provider)

        expected = md5(f"{click_trans_id}{self._config.secret_key}{merchant_trans_id}{amount}")
        if not constant_time_equals(expected, str(given).lower()):
            raise PaymentSignatureError("click callback signature mismatch", provider=self.provider)

        try:
            error = int(payload.get("error", 0) or 0)
            action = int(payload.get("action", ACTION_COMPLETE))
            parsed_amount = parse_amount(amount)
        except (InvalidOperation, ValueError, TypeError) as exc:
            raise PaymentProviderError(
                "click callback has malformed fields",
                provider=self.provider,
                provider_code=str(ClickError.REQUEST_ERROR.value),
            ) from exc

        if error != ClickError.SUCCESS:
            status = PaymentStatus.FAILED
        elif action == ACTION_PREPARE:
            status = PaymentStatus.PENDING
        else:
            status = PaymentStatus.COMPLETED

        return CallbackResult(
            status=status,
            transaction_id=str(merchant_trans_id),
            amount=parsed_amount,
            provider_status=f"action={action} error={error}",
            data={
                "click_trans_id": str(click_trans_id),
                "merchant_prepare_id": payload.get("merchant_prepare_id"),
                "action": action,
            },
        )

    def _error_code(self, raw: Any, operation: str) -> int:
        try:
            return int(raw)
        except (TypeError, ValueError) as exc:
            raise PaymentProviderError(
                f"click {operation} returned a non-numeric error code",
                provider=self.provider,
                details={"error": str(raw)},
            ) from exc

    async def check_status(self, transaction_id: str) -> PaymentStatus:  # type: ignore[override]
        self._require(service_id=self._config.service_id, secret_key=self._config.secret_key)
        timestamp = sign_time()
        sign = self._sign(self._config.service_id, transaction_id, "", timestamp, self._config.secret_key)
        params = {
            "service_id": self._config.service_id,
            "click_trans_id": transaction_id,
            "sign_time": timestamp,
            "sign_string": sign,
        }
        response = await self._send(
            "check_status",
            lambda client: client.get(
                f"{self._config.base_url}/api/invoice-status/",
                params=params,
                headers=self._auth_headers(timestamp, sign),
            ),
        )
        body = self._json(response, "check_status")
        error = self._error_code(body.get("error", -1), "check_status")
        return PaymentStatus.COMPLETED if error == ClickError.SUCCESS else PaymentStatus.FAILED

    async def refund(self, transaction_id: str, amount: Optional[int] = None) -> RefundResult:  # type: ignore[override]
        self._require(service_id=self._config.service_id, secret_key=self._config.secret_key)
        timestamp = sign_time()
        sign = self._sign(
            self._config.service_id, transaction_id, "" if amount is None else amount, timestamp, self._config.secret_key
        )
        response = await self._send(
            "refund",
            lambda client: client.delete(
                f"{self._config.base_url}/api/payment/reversal/{self._config.service_id}/{transaction_id}",
                headers=self._auth_headers(timestamp, sign),
            ),
        )
        body = self._json(response, "refund")
        error = self._error_code(body.get("error_code", body.get("error", -1)), "refund")
        if error != ClickError.SUCCESS:
            raise PaymentProviderError(
                body.get("error_note") or "click reversal rejected",
                provider=self.provider,
                provider_code=str(error),
            )
        refund_id = str(body.get("payment_id") or f"{transaction_id}:{timestamp}")
        return RefundResult(refund_id=refund_id, status=PaymentStatus.REFUNDED)
