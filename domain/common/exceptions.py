"""Domain-level business exceptions, shared by the domain and infrastructure layers.

The core layer only maps these to HTTP responses; the domain never imports core.
"""
from __future__ import annotations

from typing import Optional
from shared.codes import BusinessCode


class BusinessException(Exception):
    """Base class for every expected business error."""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        super().__init__(self.message)


class DomainValidationException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="DomainValidationError",
            details=details,
            field=field,
        )


class ForbiddenException(BusinessException):
    def __init__(self, message: str = "Forbidden", *, details: dict | None = None):
        super().__init__(
            code=BusinessCode.FORBIDDEN,
            message=message,
            error_type="Forbidden",
            details=details,
        )


# ---- checkout / catalog ----


class CartEmptyException(BusinessException):
    def __init__(self, cart_id: Optional[str] = None):
        super().__init__(
            code=BusinessCode.CART_EMPTY,
            message="Cart is empty",
            error_type="CartEmpty",
            details={"cart_id": cart_id} if cart_id else None,
        )


class ProductUnavailableException(BusinessException):
    def __init__(self, product_id: str):
        super().__init__(
            code=BusinessCode.PRODUCT_UNAVAILABLE,
            message="Product unavailable",
            error_type="ProductUnavailable",
            details={"product_id": product_id},
        )


class VariantNotFoundException(BusinessException):
    def __init__(self, product_id: str, sku: str):
        super().__init__(
            code=BusinessCode.VARIANT_NOT_FOUND,
            message="Variant not found",
            error_type="VariantNotFound",
            details={"product_id": product_id, "sku": sku},
        )


class InsufficientStockException(BusinessException):
    def __init__(self, product_id: str, sku: str, requested: int, available: Optional[int] = None):
        details = {"product_id": product_id, "sku": sku, "requested": requested}
        if available is not None:
            details["available"] = available
        super().__init__(
            code=BusinessCode.INSUFFICIENT_STOCK,
            message="Insufficient stock",
            error_type="InsufficientStock",
            details=details,
        )


# ---- orders ----


class OrderNotFoundException(BusinessException):
    def __init__(self, order_id: Optional[str] = None):
        super().__init__(
            code=BusinessCode.ORDER_NOT_FOUND,
            message="Order not found",
            error_type="OrderNotFound",
            details={"order_id": order_id} if order_id else None,
        )


class OrderStatusConflictException(BusinessException):
    def __init__(self, current: str, target: str):
        super().__init__(
            code=BusinessCode.ORDER_STATUS_CONFLICT,
            message=f"Order cannot move from {current} to {target}",
            error_type="OrderStatusConflict",
            details={"current": current, "target": target},
        )


# ---- payments ledger ----


class PaymentNotFoundException(BusinessException):
    def __init__(self, *, payment_id: Optional[str] = None, transaction_id: Optional[str] = None):
        details = {}
        if payment_id:
            details["payment_id"] = payment_id
        if transaction_id:
            details["transaction_id"] = transaction_id
        super().__init__(
            code=BusinessCode.PAYMENT_NOT_FOUND,
            message="Payment not found",
            error_type="PaymentNotFound",
            details=details or None,
        )


class PaymentNotRefundableException(BusinessException):
    def __init__(self, payment_id: str, status: str, reason: str = "Only completed payments can be refunded"):
        super().__init__(
            code=BusinessCode.PAYMENT_NOT_REFUNDABLE,
            message=reason,
            error_type="PaymentNotRefundable",
            details={"payment_id": payment_id, "status": status},
        )


class InvalidStatusTransitionException(BusinessException):
    def __init__(self, current: str, target: str):
        super().__init__(
            code=BusinessCode.PAYMENT_STATUS_CONFLICT,
            message=f"Payment cannot move from {current} to {target}",
            error_type="InvalidStatusTransition",
            details={"current": current, "target": target},
        )


class PaymentAmountMismatchException(BusinessException):
    def __init__(self, expected: int, received: int):
        super().__init__(
            code=BusinessCode.PAYMENT_AMOUNT_MISMATCH,
            message="Payment amount does not match",
            error_type="PaymentAmountMismatch",
            details={"expected": expected, "received": received},
            field="amount",
        )


class ProviderTransactionNotFoundException(BusinessException):
    def __init__(self, transaction_id: str):
        super().__init__(
            code=BusinessCode.PROVIDER_TRANSACTION_NOT_FOUND,
            message="Transaction not found",
            error_type="ProviderTransactionNotFound",
            details={"transaction_id": transaction_id},
        )
