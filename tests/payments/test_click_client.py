import httpx
import pytest

from application.dtos.payments import CreatePayment
from core.settings import ClickSettings
from domain.payment.entity import PaymentStatus
from infrastructure.external.payments.click_client import ClickClient
from infrastructure.external.payments.exceptions import PaymentProviderError, PaymentSignatureError
from shared.crypto import md5


CONFIG = ClickSettings(service_id="svc-1", merchant_id="m-1", merchant_user_id="mu-1", secret_key="click-secret")


def _client(handler=None) -> ClickClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler)) if handler else None
    return ClickClient(CONFIG, retry={"max": 0, "base": 0.01}, http_client=http)


def _callback(**overrides) -> dict:
    payload = {
        "click_trans_id": "555",
        "merchant_trans_id": "TXN-1",
        "amount": "15000",
        "action": "1",
        "error": "0",
    }
    payload.update(overrides)
    payload.setdefault(
        "sign_string",
        md5(f"{payload['click_trans_id']}click-secret{payload['merchant_trans_id']}{payload['amount']}"),
    )
    return payload


@pytest.mark.asyncio
async def test_payment_url_contains_signed_parts():
    intent = await _client().create_payment(
        CreatePayment(amount=15_000, order_id="o-1", return_url="https://shop.example/r", merchant_trans_id="TXN-1")
    )
    assert intent.transaction_id == "TXN-1"
    assert intent.payment_url.startswith("https://sandbox.click.uz/invoice/pay/svc-1/TXN-1/15000/?")
    assert "sign_string=" in intent.payment_url
    assert "sign_time=" in intent.payment_url


def test_complete_callback():
    result = _client().process_callback(_callback(), {})
    assert result.status is PaymentStatus.COMPLETED
    assert result.transaction_id == "TXN-1"
    assert result.amount == 15_000
    assert result.data["click_trans_id"] == "555"


def test_prepare_callback_is_pending():
    assert _client().process_callback(_callback(action="0"), {}).status is PaymentStatus.PENDING


def test_error_callback_is_failed():
    assert _client().process_callback(_callback(error="-5017"), {}).status is PaymentStatus.FAILED


def test_decimal_amount_is_accepted():
    assert _client().process_callback(_callback(amount="15000.00"), {}).amount == 15_000


def test_tampered_amount_fails_signature():
    payload = _callback()
    payload["amount"] = "1"
    with pytest.raises(PaymentSignatureError):
        _client().process_callback(payload, {})


@pytest.mark.asyncio
async def test_refund_error_code_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "DELETE"
        assert request.url.path == "/api/payment/reversal/svc-1/555"
        assert request.headers["Auth"].startswith("mu-1:")
        return httpx.Response(200, json={"error_code": -5, "error_note": "not found"})

    with pytest.raises(PaymentProviderError) as exc:
        await _client(handler).refund("555", 15_000)
    assert exc.value.provider_code == "-5"


@pytest.mark.asyncio
async def test_refund_success():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"error_code": 0, "payment_id": 4242})

    result = await _client(handler).refund("555", 15_000)
    assert result.refund_id == "4242"
    assert result.status is PaymentStatus.REFUNDED


@pytest.mark.asyncio
async def test_check_status_rejects_non_numeric_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"error": "oops", "error_note": "maintenance"})

    with pytest.raises(PaymentProviderError):
        await _client(handler).check_status("555")


@pytest.mark.asyncio
async def test_check_status_maps_error_code():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/invoice-status/"
        return httpx.Response(200, json={"error": "0"} if request.url.params["click_trans_id"] == "555" else {"error": -5})

    assert await _client(handler).check_status("555") is PaymentStatus.COMPLETED
    assert await _client(handler).check_status("556") is PaymentStatus.FAILED
