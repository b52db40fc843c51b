"""
Payme adapter: JSON-RPC 2.0 over HTTPS with Basic-Auth.

Every request carries a monotonically increasing `id` and `params.time` (epoch ms);
amounts travel in tiyin (x100). Inbound calls from Payme are themselves JSON-RPC
method invocations authenticated by Basic-Auth; a legacy variant without the
header signs `transaction_id + account + amount` with HMAC-SHA256.
"""
from __future__ import annotations

import itertools
from decimal import InvalidOperation
from typing import Any, Mapping, Optional
from urllib.parse import urlencode

import httpx

from application.dtos.payments import CallbackResult, CreatePayment, PaymentIntent, RefundResult
from core.settings import PaymeSettings
from domain.payment.entity import PaymentMethod, PaymentStatus
from infrastructure.external.payments.base import (
    BasePaymentClient,
    from_subunits,
    lower_headers,
    to_subunits,
)
from infrastructure.external.payments.exceptions import PaymentProviderError, PaymentSignatureError
from shared.codes.payment_codes import PaymeRpcError
from shared.crypto import basic_auth_header, generate_opaque_id, hmac_sha256, verify_basic_auth, verify_signature

# CancelTransaction reason code "refund to customer"
REFUND_REASON = 5


def _account_string(account: Any) -> str:
    if isinstance(account, Mapping):
        return str(account.get("order_id", ""))
    return "" if account is None else str(account)


class PaymeClient(BasePaymentClient):
    method = PaymentMethod.PAYME

    def __init__(
        self,
        config: PaymeSettings,
        *,
        timeouts: Optional[dict[str, float]] = None,
        retry: Optional[dict[str, Any]] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        super().__init__(timeouts=timeouts, retry=retry, http_client=http_client)
        self._config = config
        self._request_ids = itertools.count(1)

    async def _rpc(self, rpc_method: str, params: dict[str, Any]) -> dict[str, Any]:
        self._require(username=self._config.username, password=self._config.password)
        envelope = {
            "jsonrpc": "2.0",
            "id": next(self._request_ids),
            "method": rpc_method,
            "params": {**params, "time": self._now_ms()},
        }
        headers = {
            "Authorization": basic_auth_header(self._config.username, self._config.password),
            "Content-Type": "application/json",
        }
        self._log("payme_rpc_request", rpc_method=rpc_method, rpc_id=envelope["id"])
        response = await self._send(
            rpc_method,
            lambda client: client.post(self._config.base_url, json=envelope, headers=headers),
        )
        body = self._json(response, rpc_method)
        error = body.get("error")
        if error:
            message = error.get("message") if isinstance(error, dict) else str(error)
            if isinstance(message, dict):
                message = message.get("en") or next(iter(message.values()), "")
            raise PaymentProviderError(
                f"payme {rpc_method} failed: {message or 'unknown error'}",
                provider=self.provider,
                provider_code=str(error.get("code")) if isinstance(error, dict) else None,
            )
        result = body.get("result")
        return result if isinstance(result, dict) else {}

    def checkout_url(self, transaction_id: str, return_url: str) -> str:
        signature = hmac_sha256(f"{self._config.merchant_id}{transaction_id}", self._config.password)
        query = urlencode({
            "merchant_id": self._config.merchant_id,
            "transaction_id": transaction_id,
            "signature": signature,
            "return_url": return_url,
        })
        return f"{self._config.base_url}/checkout?{query}"

    async def create_payment(self, req: CreatePayment) -> PaymentIntent:  # type: ignore[override]
        self._require(merchant_id=self._config.merchant_id)
        account: dict[str, Any] = {"order_id": req.order_id}
        if req.phone:
            account["phone"] = req.phone
        amount = to_subunits(req.amount)

        check = await self._rpc("CheckPerformTransaction", {"amount": amount, "account": account})
        if not check.get("allow"):
            raise PaymentProviderError(
                "payme refused the transaction",
                provider=self.provider,
                provider_code="allow=false",
            )

        created = await self._rpc(
            "CreateTransaction",
            {
                "id": req.merchant_trans_id or generate_opaque_id(),
                "amount": amount,
                "account": account,
                "description": req.description or f"Order {req.order_id}",
            },
        )
        transaction_id = created.get("transaction")
        if not transaction_id:
            raise PaymentProviderError("payme did not return a transaction", provider=self.provider)
        transaction_id = str(transaction_id)
        self._log("payme_transaction_created", order_id=req.order_id, transaction_id=transaction_id)
        return PaymentIntent(transaction_id=transaction_id, payment_url=self.checkout_url(transaction_id, req.return_url))

    async def check_status(self, transaction_id: str) -> PaymentStatus:  # type: ignore[override]
        result = await self._rpc("CheckTransaction", {"id": transaction_id})
        return self._map_status(result.get("state"))

    async def refund(self, transaction_id: str, amount: Optional[int] = None) -> RefundResult:  # type: ignore[override]
        result = await self._rpc("CancelTransaction", {"id": transaction_id, "reason": REFUND_REASON})
        if str(result.get("state")) != "-2":
            raise PaymentProviderError(
                "payme did not cancel the performed transaction",
                provider=self.provider,
                provider_code=str(result.get("state")),
            )
        refund_id = f"{result.get('transaction') or transaction_id}:{result.get('cancel_time') or self._now_ms()}"
        return RefundResult(refund_id=refund_id, status=PaymentStatus.REFUNDED)

    def process_callback(self, payload: Mapping[str, Any], headers: Mapping[str, str]) -> CallbackResult:  # type: ignore[override]
        authorization = lower_headers(headers).get("authorization")
        if authorization:
            return self._process_rpc_call(payload, authorization)
        return self._process_legacy_callback(payload)

    def _process_rpc_call(self, payload: Mapping[str, Any], authorization: str) -> CallbackResult:
        if not verify_basic_auth(authorization, self._config.username or "", self._config.password or ""):
            raise PaymentSignatureError("payme credentials mismatch", provider=self.provider)

        rpc_method = str(payload.get("method") or "")
        params = payload.get("params") or {}
        status = self._map_status(rpc_method, table="payme_rpc", default=None)  # type: ignore[arg-type]
        if status is None:
            raise PaymentProviderError(
                f"unsupported payme method {rpc_method!r}",
                provider=self.provider,
                provider_code=str(PaymeRpcError.METHOD_NOT_FOUND.value),
            )
        transaction_id = params.get("id")
        if not transaction_id:
            raise PaymentProviderError(
                "payme call without transaction id",
                provider=self.provider,
                provider_code=str(PaymeRpcError.TRANSACTION_NOT_FOUND.value),
            )
        return CallbackResult(
            status=status,
            transaction_id=str(transaction_id),
            amount=self._amount(params.get("amount")),
            provider_status=rpc_method,
            data={"rpc_id": payload.get("id"), "rpc_method": rpc_method},
        )

    def _process_legacy_callback(self, payload: Mapping[str, Any]) -> CallbackResult:
        transaction_id = payload.get("transaction_id")
        signature = payload.get("signature")
        amount = payload.get("amount")
        if not transaction_id or not signature or amount is None or not self._config.password:
            raise PaymentSignatureError("payme callback is not signed", provider=self.provider)

        message = f"{transaction_id}{_account_string(payload.get('account'))}{amount}"
        if not verify_signature(message, str(signature), self._config.password):
            raise PaymentSignatureError("payme callback signature mismatch", provider=self.provider)

        perform = str(payload.get("perform"))
        return CallbackResult(
            status=self._map_status(perform, table="payme_perform"),
            transaction_id=str(transaction_id),
            amount=self._amount(amount),
            provider_status=f"perform={perform}",
        )

    def _amount(self, value: Any) -> Optional[int]:
        if value is None:
            return None
        try:
            return from_subunits(value)
        except (InvalidOperation, ValueError) as exc:
            raise PaymentProviderError(
                "payme sent an invalid amount",
                provider=self.provider,
                provider_code=str(PaymeRpcError.INVALID_AMOUNT.value),
            ) from exc
