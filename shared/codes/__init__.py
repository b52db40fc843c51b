"""
Shared business codes used across layers (Domain/Core/API).

This package exposes BusinessCode at `shared.codes` and keeps
payment-specific codes under `shared.codes.payment_codes`.
"""
from enum import IntEnum


class BusinessCode(IntEnum):
    """Unified business status codes (single source of truth)."""

    # Success
    SUCCESS = 0

    # Parameter errors (1xxxx)
    PARAM_ERROR = 10000
    PARAM_MISSING = 10001
    PARAM_TYPE_ERROR = 10002
    PARAM_VALIDATION_ERROR = 10003

    # Business errors (2xxxx)
    BUSINESS_ERROR = 20000
    TOKEN_INVALID = 20004
    TOKEN_EXPIRED = 20005
    NOT_FOUND = 20006  # Generic resource not found

    # Checkout / catalog (201xx)
    CART_EMPTY = 20100
    PRODUCT_UNAVAILABLE = 20101
    VARIANT_NOT_FOUND = 20102
    INSUFFICIENT_STOCK = 20103

    # Orders / payments ledger (202xx)
    ORDER_NOT_FOUND = 20200
    ORDER_STATUS_CONFLICT = 20201
    PAYMENT_NOT_FOUND = 20210
    PAYMENT_NOT_REFUNDABLE = 20211
    PAYMENT_STATUS_CONFLICT = 20212
    PAYMENT_AMOUNT_MISMATCH = 20213
    PROVIDER_TRANSACTION_NOT_FOUND = 20220

    # Authorization errors (3xxxx)
    PERMISSION_ERROR = 30000
    UNAUTHORIZED = 30001
    FORBIDDEN = 30002

    # System errors (4xxxx)
    SYSTEM_ERROR = 40000
    DATABASE_ERROR = 40001
    NETWORK_ERROR = 40002
    SERVICE_UNAVAILABLE = 40003

    # Rate limiting (5xxxx)
    RATE_LIMIT_ERROR = 50000
    TOO_MANY_REQUESTS = 50001


__all__ = ["BusinessCode"]
