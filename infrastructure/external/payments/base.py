"""
Base payment client implementing shared concerns: http, retry, error mapping, logging.

Concrete providers subclass and implement provider-specific signing and parsing.
"""
from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Awaitable, Callable, Mapping, Optional
from contextlib import asynccontextmanager

import httpx
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential, retry_if_exception_type

from core.logging_config import get_logger
from application.dtos.payments import CallbackResult, CreatePayment, PaymentIntent, RefundResult
from application.ports.payment_gateway import PaymentProvider
from domain.payment.entity import PaymentMethod, PaymentStatus
from infrastructure.external.payments.exceptions import (
    PaymentProviderError,
    PaymentRecoverableError,
)
from shared.codes.payment_codes import PaymentCode, PROVIDER_STATUS_TO_INTERNAL


logger = get_logger(__name__)

SUBUNITS = 100


def to_subunits(amount: int) -> int:
    return int(amount) * SUBUNITS


def from_subunits(amount: Any) -> int:
    """Tiyin → so'm; fractional values are rejected rather than rounded."""
    units = Decimal(str(amount)) / SUBUNITS
    if units != units.to_integral_value():
        raise InvalidOperation(f"amount {amount} is not a whole number of units")
    return int(units)


def parse_amount(value: Any) -> int:
    """Parse an amount given in whole units, accepting "1000", 1000 or "1000.00"."""
    units = Decimal(str(value))
    if units != units.to_integral_value():
        raise InvalidOperation(f"amount {value} is not a whole number of units")
    return int(units)


def lower_headers(headers: Mapping[str, str] | None) -> dict[str, str]:
    return {str(k).lower(): v for k, v in (headers or {}).items()}


class BasePaymentClient(PaymentProvider):
    method: PaymentMethod

    def __init__(
        self,
        *,
        timeouts: Optional[dict[str, float]] = None,
        retry: Optional[dict[str, Any]] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._timeouts_cfg = timeouts or {"connect": 1.0, "read": 3.0, "write": 3.0, "total": 5.0}
        self._retry_cfg = retry or {"max": 2, "base": 0.2}
        self._client: Optional[httpx.AsyncClient] = http_client
        self._owns_client = http_client is None

    @property
    def provider(self) -> str:
        return self.method.value

    @property
    def timeouts(self) -> httpx.Timeout:
        return httpx.Timeout(
            self._timeouts_cfg["total"],
            connect=self._timeouts_cfg["connect"],
            read=self._timeouts_cfg["read"],
            write=self._timeouts_cfg["write"],
        )

    @asynccontextmanager
    async def client(self):
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeouts)
        # kept open for reuse; aclose() releases it
        yield self._client

    async def aclose(self) -> None:
        """Close underlying HTTP client if created."""
        if self._client is not None and self._owns_client:
            try:
                await self._client.aclose()
            finally:
                self._client = None

    async def _retry(self, fn: Callable[[], Awaitable[Any]]):
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(int(self._retry_cfg["max"]) + 1),
            wait=wait_exponential(multiplier=self._retry_cfg["base"], min=0.1, max=2.0),
            retry=retry_if_exception_type((httpx.TimeoutException, httpx.TransportError)),
            reraise=True,
        ):
            with attempt:
                return await fn()

    async def _send(self, operation: str, request: Callable[[httpx.AsyncClient], Awaitable[httpx.Response]]) -> httpx.Response:
        """Run an HTTP call with retries and translate failures into the adapter error classes."""
        async with self.client() as client:
            try:
                response = await self._retry(lambda: request(client))
            except httpx.TimeoutException as exc:
                self._log("payment_provider_timeout", operation=operation)
                raise PaymentRecoverableError(
                    f"{self.provider} {operation} timed out",
                    provider=self.provider,
                    provider_code="timeout",
                    code=PaymentCode.TIMEOUT,
                ) from exc
            except httpx.TransportError as exc:
                self._log("payment_provider_unreachable", operation=operation, error=str(exc))
                raise PaymentRecoverableError(
                    f"{self.provider} {operation} failed: {exc.__class__.__name__}",
                    provider=self.provider,
                    provider_code="transport",
                ) from exc

        if response.status_code == 429:
            raise PaymentRecoverableError(
                f"{self.provider} rate limited",
                provider=self.provider,
                provider_code="429",
                code=PaymentCode.RATE_LIMITED,
            )
        if response.status_code >= 500:
            raise PaymentRecoverableError(
                f"{self.provider} {operation} returned {response.status_code}",
                provider=self.provider,
                provider_code=str(response.status_code),
            )
        if response.status_code >= 400:
            raise PaymentProviderError(
                f"{self.provider} {operation} rejected with {response.status_code}",
                provider=self.provider,
                provider_code=str(response.status_code),
            )
        return response

    def _json(self, response: httpx.Response, operation: str) -> dict[str, Any]:
        try:
            body = response.json()
        except ValueError as exc:
            raise PaymentProviderError(
                f"{self.provider} {operation} returned a non-JSON body",
                provider=self.provider,
            ) from exc
        if not isinstance(body, dict):
            raise PaymentProviderError(f"{self.provider} {operation} returned an unexpected body", provider=self.provider)
        return body

    def _require(self, **values: Optional[str]) -> None:
        missing = [name for name, value in values.items() if not value]
        if missing:
            raise PaymentProviderError(
                f"{self.provider} is not configured",
                provider=self.provider,
                details={"missing": missing},
            )

    @staticmethod
    def _now_ms() -> int:
        return int(datetime.now(timezone.utc).timestamp() * 1000)

    # Default implementations raise to force override where needed
    async def create_payment(self, req: CreatePayment) -> PaymentIntent:  # type: ignore[override]
        raise NotImplementedError

    def process_callback(self, payload: Mapping[str, Any], headers: Mapping[str, str]) -> CallbackResult:  # type: ignore[override]
        raise NotImplementedError

    async def check_status(self, transaction_id: str) -> PaymentStatus:  # type: ignore[override]
        raise NotImplementedError

    async def refund(self, transaction_id: str, amount: Optional[int] = None) -> RefundResult:  # type: ignore[override]
        raise NotImplementedError

    # Helpers
    def _map_status(self, provider_status: Any, table: Optional[str] = None,
                    default: PaymentStatus = PaymentStatus.PENDING) -> PaymentStatus:
        mapping = PROVIDER_STATUS_TO_INTERNAL.get(table or self.provider, {})
        internal = mapping.get(str(provider_status))
        return PaymentStatus(internal) if internal else default

    def _log(self, event: str, **kwargs) -> None:
        logger.info(
            event,
            provider=self.provider,
            **kwargs,
        )
