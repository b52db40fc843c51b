import base64

import httpx
import jwt
import pytest

from domain.cart.entity import CartItem
from main import app


ADDRESS = {"full_name": "Ali Valiyev", "phone": "+998901234567", "city": "Tashkent", "address": "Amir Temur 1"}


def _bearer(user_id: str = "u1") -> dict:
    token = jwt.encode({"sub": user_id}, "test-secret-key", algorithm="HS256")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def client(services):
    app.state.services = services
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["data"] == {"status": "healthy"}


@pytest.mark.asyncio
async def test_checkout_requires_token(client):
    resp = await client.post("/api/v1/checkout", json={"payment_method": "click", "delivery_address": ADDRESS})
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_checkout_then_list_orders(client, seed_product, fill_cart):
    await seed_product("p1", price=1_000_000, stock=3)
    await fill_cart("u1", CartItem("p1", "SOFA-GREY", 1))

    resp = await client.post(
        "/api/v1/checkout",
        json={"payment_method": "payme", "delivery_address": ADDRESS},
        headers=_bearer(),
    )
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["order"]["status"] == "created"
    assert data["payment"]["status"] == "pending"
    assert data["payment_url"] is None

    orders = (await client.get("/api/v1/orders", headers=_bearer())).json()["data"]
    assert [o["id"] for o in orders] == [data["order"]["id"]]
    other = await client.get(f"/api/v1/orders/{data['order']['id']}", headers=_bearer("u2"))
    assert other.status_code == 404


@pytest.mark.asyncio
async def test_empty_cart_checkout_conflicts(client):
    resp = await client.post(
        "/api/v1/checkout",
        json={"payment_method": "click", "delivery_address": ADDRESS},
        headers=_bearer(),
    )
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_guest_cart_needs_identity(client):
    resp = await client.get("/api/v1/cart")
    assert resp.status_code == 422

    resp = await client.post(
        "/api/v1/cart/items",
        json={"product_id": "p1", "variant_sku": "A", "quantity": 2},
        headers={"X-Guest-Id": "g-1"},
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["items"][0]["quantity"] == 2


@pytest.mark.asyncio
async def test_payme_bad_auth_is_rpc_error(client):
    resp = await client.post(
        "/api/v1/payments/payme/callback",
        json={"id": 7, "transaction_id": "t-1", "status": "completed", "signature": "bad"},
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["id"] == 7
    assert body["error"]["code"] == -32504


@pytest.mark.asyncio
async def test_click_bad_signature_ack(client):
    resp = await client.post(
        "/api/v1/payments/click/callback",
        data={"click_trans_id": "99", "merchant_trans_id": "m-1", "action": "0", "signature": "bad"},
    )
    body = resp.json()
    assert body["error"] == -1
    assert body["click_trans_id"] == "99"
    assert "merchant_prepare_id" in body


@pytest.mark.asyncio
async def test_uzum_webhook_rejects_wrong_credentials(client):
    creds = base64.b64encode(b"uzum:wrong").decode()
    resp = await client.post(
        "/api/v1/payments/uzum/check",
        json={"service_id": "101", "timestamp": 1, "params": {"account": "x"}},
        headers={"Authorization": f"Basic {creds}"},
    )
    assert resp.status_code == 401
    assert resp.json()["status"] == "ERROR"
    assert resp.json()["service_id"] == "101"


@pytest.mark.asyncio
async def test_webhook_allowlist_ignores_forwarded_header(client, monkeypatch):
    from core.settings import payment_settings

    monkeypatch.setattr(payment_settings.webhook, "ip_allowlist", ["10.0.0.0/8"])
    resp = await client.post(
        "/api/v1/payments/uzum/callback",
        json={"transaction_id": "t-1", "status": "completed", "signature": "ok"},
        headers={"X-Forwarded-For": "10.1.2.3"},
    )
    assert resp.status_code == 403

    monkeypatch.setattr(payment_settings.webhook, "ip_allowlist", ["127.0.0.1"])
    resp = await client.post(
        "/api/v1/payments/uzum/callback",
        json={"transaction_id": "unknown", "status": "completed", "signature": "ok"},
    )
    assert resp.status_code == 200
    assert resp.json()["status"] == "ERROR"


@pytest.mark.asyncio
async def test_payme_cancel_of_completed_payment_is_refused(client, services, seed_product, fill_cart):
    from application.dtos.checkout import CheckoutRequest
    from domain.payment.entity import PaymentStatus

    await seed_product("p1", price=100_000, stock=3)
    await fill_cart("u1", CartItem("p1", "SOFA-GREY", 1))
    placed = await services.checkout.checkout(
        "u1",
        CheckoutRequest.model_validate(
            {"payment_method": "payme", "delivery_address": ADDRESS, "return_url": "https://shop.example/r"}
        ),
    )
    txn, amount = placed.payment.transaction_id, placed.order.grand_total

    def rpc(rpc_id, status, rpc_method):
        return {
            "id": rpc_id,
            "transaction_id": txn,
            "status": status,
            "amount": amount,
            "signature": "ok",
            "data": {"rpc_method": rpc_method},
        }

    performed = (await client.post("/api/v1/payments/payme/callback", json=rpc(1, "completed", "PerformTransaction"))).json()
    assert performed["result"]["state"] == 2

    cancelled = (await client.post("/api/v1/payments/payme/callback", json=rpc(2, "failed", "CancelTransaction"))).json()
    assert "result" not in cancelled
    assert cancelled["error"]["code"] == -31007
    payment = await services.payments.get_payment(placed.payment.id)
    assert payment.status is PaymentStatus.COMPLETED


@pytest.mark.asyncio
async def test_payme_cancel_of_pending_payment_reports_cancelled(client, services, seed_product, fill_cart):
    from application.dtos.checkout import CheckoutRequest

    await seed_product("p1", price=100_000, stock=3)
    await fill_cart("u1", CartItem("p1", "SOFA-GREY", 1))
    placed = await services.checkout.checkout(
        "u1",
        CheckoutRequest.model_validate(
            {"payment_method": "payme", "delivery_address": ADDRESS, "return_url": "https://shop.example/r"}
        ),
    )

    resp = await client.post(
        "/api/v1/payments/payme/callback",
        json={
            "id": 3,
            "transaction_id": placed.payment.transaction_id,
            "status": "failed",
            "amount": placed.order.grand_total,
            "signature": "ok",
            "data": {"rpc_method": "CancelTransaction"},
        },
    )
    assert resp.json()["result"]["state"] == -1
