"""
Payment specific codes and provider status mapping.
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    # Generic success
    SUCCESS = 0

    # Provider/Network errors (6xxxx)
    PROVIDER_ERROR = 60000
    PROVIDER_RECOVERABLE = 60001
    SIGNATURE_ERROR = 60002
    TIMEOUT = 60003
    RATE_LIMITED = 60004


class PaymeRpcError(IntEnum):
    """JSON-RPC error codes answered to Payme."""

    SYSTEM_ERROR = -32400
    INSUFFICIENT_PRIVILEGE = -32504
    METHOD_NOT_FOUND = -32601
    INVALID_AMOUNT = -31001
    TRANSACTION_NOT_FOUND = -31003
    CANNOT_CANCEL = -31007
    CANNOT_PERFORM = -31008


class ClickError(IntEnum):
    """`error` values of the Click acknowledgment."""

    SUCCESS = 0
    SIGN_CHECK_FAILED = -1
    INCORRECT_AMOUNT = -2
    ACTION_NOT_FOUND = -3
    ALREADY_PAID = -4
    NOT_FOUND = -5
    TRANSACTION_NOT_FOUND = -6
    REQUEST_ERROR = -8
    TRANSACTION_CANCELLED = -9


# Provider→canonical status mapping (canonical: pending/processing/completed/failed/refunded)
PROVIDER_STATUS_TO_INTERNAL = {
    "payme": {
        # CheckTransaction `state`
        "2": "completed",
        "1": "processing",
        "-1": "failed",
        "-2": "failed",
    },
    "payme_rpc": {
        # Merchant API methods invoked by Payme
        "CreateTransaction": "pending",
        "PerformTransaction": "completed",
        "CancelTransaction": "failed",
    },
    "payme_perform": {
        # Legacy signed callback `perform` flag
        "1": "completed",
        "-1": "failed",
    },
    "uzum": {
        "SUCCESS": "completed",
        "CONFIRMED": "completed",
        "FAILED": "failed",
        "REVERSED": "failed",
        "CANCELLED": "failed",
        "CREATED": "pending",
        "PENDING": "pending",
    },
}

