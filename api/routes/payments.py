"""
Payments API routes.

Customer endpoints use the standard envelope. Provider-facing callbacks are
unauthenticated at the HTTP layer, verify authenticity themselves and always
answer in the provider's own acknowledgment shape.
"""
from __future__ import annotations

import ipaddress
import time
from typing import Any, Awaitable, Callable, Optional, Type

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError

from api.dependencies import get_current_user_id, get_payment_service, get_uzum_webhook_service
from application.dtos.payments import (
    CallbackResult,
    CreatePaymentRequest,
    PaymentStatusResponse,
    RefundPaymentRequest,
)
from application.dtos.uzum import UzumCheckRequest, UzumConfirmRequest, UzumCreateRequest, UzumTransRequest
from application.services.payment_service import PaymentService
from application.services.uzum_webhook_service import UzumWebhookService
from core.logging_config import get_logger, log_security_event
from core.response import success_response
from core.settings import payment_settings
from domain.common.exceptions import (
    BusinessException,
    ForbiddenException,
    PaymentAmountMismatchException,
    PaymentNotFoundException,
)
from domain.payment.entity import PaymentMethod, PaymentStatus
from infrastructure.external.payments.exceptions import PaymentProviderError, PaymentSignatureError
from shared.codes.payment_codes import ClickError, PaymeRpcError


router = APIRouter(prefix="/payments", tags=["Payments"])
logger = get_logger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


async def enforce_webhook_allowlist(request: Request) -> None:
    """Reject provider callbacks from addresses outside PAYMENT__WEBHOOK__IP_ALLOWLIST (when set)."""
    allowlist = payment_settings.webhook.ip_allowlist or []
    if not allowlist:
        return
    remote_ip = getattr(request.state, "client_ip", None) or (request.client.host if request.client else "")
    try:
        rip = ipaddress.ip_address(remote_ip)
    except ValueError:
        rip = None
    for entry in allowlist:
        try:
            if rip is not None and "/" in entry and rip in ipaddress.ip_network(entry, strict=False):
                return
        except ValueError:
            continue
        if remote_ip == entry:
            return
    log_security_event("payment_webhook_ip_rejected", remote_ip=remote_ip, path=request.url.path)
    raise ForbiddenException("Callback source not allowed")


async def _read_payload(request: Request) -> dict[str, Any]:
    content_type = (request.headers.get("content-type") or "").lower()
    if "application/x-www-form-urlencoded" in content_type or "multipart/form-data" in content_type:
        form = await request.form()
        return {k: v for k, v in form.items()}
    try:
        body = await request.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


# ----------------------------------------------------------------------
# Customer endpoints
# ----------------------------------------------------------------------
@router.post("/create", summary="Create payment")
async def create_payment(
    payload: CreatePaymentRequest,
    user_id: str = Depends(get_current_user_id),
    service: PaymentService = Depends(get_payment_service),
):
    intent = await service.create_payment(user_id, payload)
    return success_response(data=intent.model_dump(mode="json"), message="Payment created")


@router.get("/status", summary="Poll payment status")
async def payment_status(
    transaction_id: str = Query(min_length=1),
    method: PaymentMethod = Query(),
    user_id: str = Depends(get_current_user_id),
    service: PaymentService = Depends(get_payment_service),
):
    payment = await service.get_payment_by_transaction(transaction_id)
    if payment.user_id != user_id:
        raise PaymentNotFoundException(transaction_id=transaction_id)
    status = await service.check_status(method, transaction_id)
    data = PaymentStatusResponse(transaction_id=transaction_id, method=method, status=status)
    return success_response(data=data.model_dump(mode="json"))


@router.get("/list", summary="List my payments")
async def list_payments(
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=200),
    user_id: str = Depends(get_current_user_id),
    service: PaymentService = Depends(get_payment_service),
):
    payments = await service.list_user_payments(user_id, skip=skip, limit=limit)
    return success_response(data=[p.model_dump(mode="json") for p in payments])


@router.post("/refund", summary="Refund a completed payment")
async def refund_payment(
    payload: RefundPaymentRequest,
    user_id: str = Depends(get_current_user_id),
    service: PaymentService = Depends(get_payment_service),
):
    result = await service.refund_payment(payload.payment_id, user_id)
    return success_response(data=result.model_dump(mode="json"), message="Payment refunded")


# ----------------------------------------------------------------------
# Payme (JSON-RPC)
# ----------------------------------------------------------------------
def _payme_error(rpc_id: Any, code: int, message: str) -> JSONResponse:
    return JSONResponse({"jsonrpc": "2.0", "id": rpc_id, "error": {"code": code, "message": message}})


def _payme_error_code(exc: BusinessException) -> int:
    if isinstance(exc, PaymentSignatureError):
        return PaymeRpcError.INSUFFICIENT_PRIVILEGE
    if isinstance(exc, PaymentNotFoundException):
        return PaymeRpcError.TRANSACTION_NOT_FOUND
    if isinstance(exc, PaymentAmountMismatchException):
        return PaymeRpcError.INVALID_AMOUNT
    if isinstance(exc, PaymentProviderError) and exc.provider_code:
        try:
            return int(exc.provider_code)
        except ValueError:
            pass
    return PaymeRpcError.CANNOT_PERFORM


def _payme_result(result: CallbackResult) -> dict[str, Any]:
    now = _now_ms()
    body: dict[str, Any] = {"transaction": result.payment_id}
    rpc_method = result.data.get("rpc_method")
    if rpc_method == "PerformTransaction":
        body.update(perform_time=now, state=2)
    elif rpc_method == "CancelTransaction":
        refunded = result.payment_status is PaymentStatus.REFUNDED
        body.update(cancel_time=now, state=-2 if refunded else -1)
    elif rpc_method == "CreateTransaction":
        body.update(create_time=now, state=1)
    else:
        body.update(status=result.payment_status.value if result.payment_status else None)
    return body


@router.post("/payme/callback", summary="Payme merchant API", dependencies=[Depends(enforce_webhook_allowlist)])
async def payme_callback(request: Request, service: PaymentService = Depends(get_payment_service)):
    payload = await _read_payload(request)
    rpc_id = payload.get("id")
    try:
        result = await service.handle_callback(PaymentMethod.PAYME, payload, dict(request.headers))
    except BusinessException as exc:
        logger.info("payme_callback_error", rpc_id=rpc_id, code=int(exc.code), error=exc.message)
        return _payme_error(rpc_id, _payme_error_code(exc), exc.message)
    except Exception as exc:  # noqa: BLE001
        logger.error("payme_callback_failed", rpc_id=rpc_id, error=str(exc), exc_info=True)
        return _payme_error(rpc_id, PaymeRpcError.SYSTEM_ERROR, "Internal error")
    if result.data.get("rpc_method") == "CancelTransaction" and result.payment_status not in (
        PaymentStatus.FAILED,
        PaymentStatus.REFUNDED,
    ):
        # the ledger kept the payment; never report it as cancelled
        logger.info(
            "payme_cancel_refused",
            rpc_id=rpc_id,
            payment_id=result.payment_id,
            status=result.payment_status.value if result.payment_status else None,
        )
        return _payme_error(rpc_id, PaymeRpcError.CANNOT_CANCEL, "Transaction cannot be cancelled")
    return JSONResponse({"jsonrpc": "2.0", "id": rpc_id, "result": _payme_result(result)})


# ----------------------------------------------------------------------
# Click (signed form callback)
# ----------------------------------------------------------------------
def _click_ack(payload: dict[str, Any], error: int, note: str, payment_id: Optional[str] = None) -> JSONResponse:
    action = str(payload.get("action", "1"))
    id_field = "merchant_prepare_id" if action == "0" else "merchant_confirm_id"
    return JSONResponse(
        {
            "click_trans_id": payload.get("click_trans_id"),
            "merchant_trans_id": payload.get("merchant_trans_id"),
            id_field: payment_id,
            "error": int(error),
            "error_note": note,
        }
    )


def _click_error_code(exc: BusinessException) -> int:
    if isinstance(exc, PaymentSignatureError):
        return ClickError.SIGN_CHECK_FAILED
    if isinstance(exc, PaymentAmountMismatchException):
        return ClickError.INCORRECT_AMOUNT
    if isinstance(exc, PaymentNotFoundException):
        return ClickError.NOT_FOUND
    return ClickError.REQUEST_ERROR


@router.post("/click/callback", summary="Click prepare/complete", dependencies=[Depends(enforce_webhook_allowlist)])
async def click_callback(request: Request, service: PaymentService = Depends(get_payment_service)):
    payload = await _read_payload(request)
    try:
        result = await service.handle_callback(PaymentMethod.CLICK, payload, dict(request.headers))
    except BusinessException as exc:
        logger.info("click_callback_error", code=int(exc.code), error=exc.message)
        return _click_ack(payload, _click_error_code(exc), exc.message)
    except Exception as exc:  # noqa: BLE001
        logger.error("click_callback_failed", error=str(exc), exc_info=True)
        return _click_ack(payload, ClickError.REQUEST_ERROR, "Internal error")

    if result.payment_status is PaymentStatus.FAILED and result.status is not PaymentStatus.FAILED:
        return _click_ack(payload, ClickError.TRANSACTION_CANCELLED, "Transaction cancelled", result.payment_id)
    if result.status is PaymentStatus.PENDING and result.payment_status is PaymentStatus.COMPLETED:
        return _click_ack(payload, ClickError.ALREADY_PAID, "Already paid", result.payment_id)
    return _click_ack(payload, ClickError.SUCCESS, "Success", result.payment_id)


# ----------------------------------------------------------------------
# Uzum
# ----------------------------------------------------------------------
@router.post("/uzum/callback", summary="Uzum signed callback", dependencies=[Depends(enforce_webhook_allowlist)])
async def uzum_callback(request: Request, service: PaymentService = Depends(get_payment_service)):
    payload = await _read_payload(request)
    try:
        result = await service.handle_callback(PaymentMethod.UZUM, payload, dict(request.headers))
    except BusinessException as exc:
        logger.info("uzum_callback_error", code=int(exc.code), error=exc.message)
        return JSONResponse({"status": "ERROR", "data": {"error": exc.message}})
    except Exception as exc:  # noqa: BLE001
        logger.error("uzum_callback_failed", error=str(exc), exc_info=True)
        return JSONResponse({"status": "ERROR", "data": {"error": "Internal error"}})
    return JSONResponse(
        {
            "status": "OK",
            "data": {
                "transaction_id": result.transaction_id,
                "payment_status": result.payment_status.value if result.payment_status else None,
            },
        }
    )


async def _uzum_phase(
    request: Request,
    phase: str,
    model: Type[BaseModel],
    handler: Callable[[Any], Awaitable[dict[str, Any]]],
    service: UzumWebhookService,
) -> JSONResponse:
    payload = await _read_payload(request)
    echo = {"service_id": payload.get("service_id")}
    if "trans_id" in payload:
        echo["trans_id"] = payload.get("trans_id")

    if not service.verify_auth(request.headers.get("authorization"), phase=phase):
        return JSONResponse({**echo, "status": "ERROR", "data": {"error": "Invalid authentication"}}, status_code=401)

    try:
        body = model.model_validate(payload)
        result = await handler(body)
    except ValidationError as exc:
        return JSONResponse({**echo, "status": "ERROR", "data": {"error": "Missing required fields", "errors": len(exc.errors())}})
    except BusinessException as exc:
        logger.info("uzum_webhook_error", phase=phase, code=int(exc.code), error=exc.message)
        return JSONResponse({**echo, "status": "ERROR", "data": {"error": exc.message}})
    except Exception as exc:  # noqa: BLE001
        logger.error("uzum_webhook_failed", phase=phase, error=str(exc), exc_info=True)
        return JSONResponse({**echo, "status": "ERROR", "data": {"error": "Internal error"}})
    return JSONResponse({**echo, "timestamp": _now_ms(), **result})


@router.post("/uzum/check", dependencies=[Depends(enforce_webhook_allowlist)])
async def uzum_check(request: Request, service: UzumWebhookService = Depends(get_uzum_webhook_service)):
    return await _uzum_phase(request, "check", UzumCheckRequest, service.check, service)


@router.post("/uzum/create", dependencies=[Depends(enforce_webhook_allowlist)])
async def uzum_create(request: Request, service: UzumWebhookService = Depends(get_uzum_webhook_service)):
    return await _uzum_phase(request, "create", UzumCreateRequest, service.create, service)


@router.post("/uzum/confirm", dependencies=[Depends(enforce_webhook_allowlist)])
async def uzum_confirm(request: Request, service: UzumWebhookService = Depends(get_uzum_webhook_service)):
    return await _uzum_phase(request, "confirm", UzumConfirmRequest, service.confirm, service)


@router.post("/uzum/reverse", dependencies=[Depends(enforce_webhook_allowlist)])
async def uzum_reverse(request: Request, service: UzumWebhookService = Depends(get_uzum_webhook_service)):
    return await _uzum_phase(request, "reverse", UzumTransRequest, service.reverse, service)


@router.post("/uzum/status", dependencies=[Depends(enforce_webhook_allowlist)])
async def uzum_status(request: Request, service: UzumWebhookService = Depends(get_uzum_webhook_service)):
    return await _uzum_phase(request, "status", UzumTransRequest, service.status, service)


# declared last so the literal paths above win
@router.get("/{payment_id}", summary="Get one of my payments")
async def get_payment(
    payment_id: str,
    user_id: str = Depends(get_current_user_id),
    service: PaymentService = Depends(get_payment_service),
):
    payment = await service.get_payment(payment_id, user_id=user_id)
    return success_response(data=payment.model_dump(mode="json"))
