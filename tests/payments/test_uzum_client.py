import json
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from application.dtos.payments import CreatePayment
from core.settings import UzumSettings
from domain.payment.entity import PaymentStatus
from infrastructure.external.payments.exceptions import PaymentProviderError, PaymentSignatureError
from infrastructure.external.payments.uzum_client import UzumClient
from shared.crypto import basic_auth_header, sha256


CONFIG = UzumSettings(
    merchant_id="um-1",
    service_id="101",
    api_key="api-key",
    secret_key="uzum-secret",
    username="uzum",
    password="hook-pass",
)


def _client(handler=None) -> UzumClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler)) if handler else None
    return UzumClient(CONFIG, retry={"max": 0, "base": 0.01}, http_client=http)


@pytest.mark.asyncio
async def test_payment_url_is_built_locally_in_tiyin():
    intent = await _client().create_payment(
        CreatePayment(amount=2_000, order_id="o-1", return_url="https://shop.example/r", merchant_trans_id="TXN-5")
    )
    query = parse_qs(urlparse(intent.payment_url).query)
    assert query["amount"] == ["200000"]
    assert query["merchant_trans_id"] == ["TXN-5"]
    assert query["signature"] == [sha256("um-1200000TXN-5uzum-secret")]


def test_webhook_basic_auth():
    client = _client()
    assert client.verify_webhook_auth(basic_auth_header("uzum", "hook-pass"))
    assert not client.verify_webhook_auth(basic_auth_header("uzum", "nope"))
    assert not client.verify_webhook_auth(None)


def test_signed_callback():
    signature = sha256("TXN-5" + "200000" + "um-1" + "uzum-secret")
    result = _client().process_callback(
        {"merchant_transaction_id": "TXN-5", "amount": 200000, "status": "success", "signature": signature},
        {},
    )
    assert result.status is PaymentStatus.COMPLETED
    assert result.amount == 2_000


def test_callback_bad_signature():
    with pytest.raises(PaymentSignatureError):
        _client().process_callback({"transaction_id": "TXN-5", "amount": 1, "status": "SUCCESS", "signature": "x"}, {})


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "provider_status,expected",
    [
        ("SUCCESS", PaymentStatus.COMPLETED),
        ("CONFIRMED", PaymentStatus.COMPLETED),
        ("confirmed", PaymentStatus.COMPLETED),
        ("FAILED", PaymentStatus.FAILED),
        ("REVERSED", PaymentStatus.FAILED),
        ("CANCELLED", PaymentStatus.FAILED),
        ("CREATED", PaymentStatus.PENDING),
        ("HOLD", PaymentStatus.PENDING),
    ],
)
async def test_check_status(provider_status, expected):
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["Authorization"] == "Bearer api-key"
        return httpx.Response(200, json={"data": {"status": provider_status}})

    assert await _client(handler).check_status("TXN-5") is expected


@pytest.mark.asyncio
async def test_refund_posts_amount_in_tiyin():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen.update(json.loads(request.content))
        return httpx.Response(200, json={"success": True})

    result = await _client(handler).refund("TXN-5", 2_000)
    assert seen["amount"] == 200_000
    assert seen["refund_id"] == result.refund_id


@pytest.mark.asyncio
async def test_refund_requires_amount():
    with pytest.raises(PaymentProviderError):
        await _client().refund("TXN-5")
