"""
Provider adapter errors mapped to unified BusinessException variants.

PaymentRecoverableError: timeout, transport failure, 5xx or rate limit (retry later).
PaymentProviderError: the provider explicitly rejected the request (terminal for this attempt).
PaymentSignatureError: inbound callback failed authentication.
"""
from __future__ import annotations

from typing import Optional
from domain.common.exceptions import BusinessException
from shared.codes.payment_codes import PaymentCode


class PaymentProviderError(BusinessException):
    retryable = False

    def __init__(self, message: str, *, provider: str, provider_code: str | None = None, details: Optional[dict] = None):
        full_details = {"provider": provider, "provider_code": provider_code}
        if details:
            full_details.update(details)
        super().__init__(
            code=PaymentCode.PROVIDER_ERROR,
            message=message,
            error_type="PaymentProviderError",
            details=full_details,
        )
        self.provider = provider
        self.provider_code = provider_code


class PaymentRecoverableError(BusinessException):
    retryable = True

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        provider_code: str | None = None,
        details: Optional[dict] = None,
        code: int = PaymentCode.PROVIDER_RECOVERABLE,
    ):
        full_details = {"provider": provider, "provider_code": provider_code}
        if details:
            full_details.update(details)
        super().__init__(
            code=code,
            message=message,
            error_type="PaymentRecoverableError",
            details=full_details,
        )
        self.provider = provider
        self.provider_code = provider_code


class PaymentSignatureError(BusinessException):
    def __init__(self, message: str, *, provider: str, details: Optional[dict] = None):
        full_details = {"provider": provider}
        if details:
            full_details.update(details)
        super().__init__(
            code=PaymentCode.SIGNATURE_ERROR,
            message=message,
            error_type="PaymentSignatureError",
            details=full_details,
        )
        self.provider = provider
