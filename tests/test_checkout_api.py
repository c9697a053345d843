from decimal import Decimal

import pytest

from application.services.checkout_service import compute_totals
from domain.order.entity import LineItem


def _draft_body(**overrides) -> dict:
    body = {
        "customerName": "Ana López",
        "customerEmail": "ana@example.com",
        "customerPhone": "5512345678",
        "shippingAddress": {"street": "Av. Reforma 1", "city": "CDMX", "state": "CDMX", "zip": "06000"},
        "shippingMethod": "express",
        "items": [
            {"productId": "p-1", "productName": "Vela", "quantity": 2, "unitPrice": "100.50"},
            {"productId": 42, "productName": "Incienso", "quantity": 1, "unitPrice": 49},
        ],
    }
    body.update(overrides)
    return body


def test_compute_totals():
    items = [LineItem(product_id="p", product_name="x", quantity=3, unit_price=Decimal("33.33"))]
    totals = compute_totals(items, "overnight")
    assert totals == {
        "subtotal": Decimal("99.99"),
        "shipping_cost": Decimal("500.00"),
        "tax": Decimal("16.00"),
        "total_amount": Decimal("615.99"),
    }


@pytest.mark.asyncio
async def test_create_draft_computes_totals_and_preference(client, gateway, uow_factory):
    resp = await client.post("/api/checkout/draft", json=_draft_body())

    assert resp.status_code == 200
    data = resp.json()["data"]
    draft_id = data["id"]
    # 201.00 + 49.00 = 250.00；税 40.00；运费 250
    assert Decimal(str(data["totalAmount"])) == Decimal("540.00")
    assert data["preferenceId"] == f"pref-{draft_id}"
    assert data["initPoint"].startswith("https://mp.test/")

    pref = gateway.preferences[0]
    assert pref.external_reference == draft_id
    assert pref.shipping_cost == Decimal("250")
    assert pref.back_urls["success"].endswith(f"draft_id={draft_id}")

    async with uow_factory(readonly=True) as uow:
        draft = await uow.order_draft_repository.get_by_id(draft_id)
    assert draft.preference_id == f"pref-{draft_id}"
    assert draft.items[1].product_id == "42"
    assert draft.tax == Decimal("40.00")


@pytest.mark.asyncio
async def test_create_draft_without_mercadopago(client, gateway):
    gateway.configured = False
    resp = await client.post("/api/checkout/draft", json=_draft_body())
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["initPoint"] is None
    assert gateway.preferences == []


@pytest.mark.asyncio
@pytest.mark.parametrize("overrides", [
    {"items": []},
    {"customerEmail": "not-an-email"},
    {"shippingMethod": "drone"},
    {"items": [{"productId": "p", "quantity": 0, "unitPrice": 1}]},
])
async def test_create_draft_rejects_invalid_input(client, overrides):
    resp = await client.post("/api/checkout/draft", json=_draft_body(**overrides))
    assert resp.status_code == 422
    assert resp.json()["success"] is False


@pytest.mark.asyncio
async def test_draft_status_pending_then_converted(client, make_draft, fulfillment, gateway):
    draft = await make_draft()

    resp = await client.get(f"/api/checkout/draft/{draft.id}/status")
    assert resp.status_code == 200
    assert resp.json()["data"] == {"status": "pending"}

    payment = gateway.add_payment("pay-1", "approved", draft.id)
    outcome = await fulfillment.apply_payment(payment)

    resp = await client.get(f"/api/checkout/draft/{draft.id}/status")
    assert resp.json()["data"] == {
        "status": "converted",
        "orderId": outcome.order_id,
        "orderNumber": outcome.order_number,
    }


@pytest.mark.asyncio
async def test_draft_status_not_found(client):
    resp = await client.get("/api/checkout/draft/nope/status")
    assert resp.status_code == 404
    assert resp.json()["success"] is False


@pytest.mark.asyncio
async def test_verify_payment_converts_and_links_order(client, make_draft, gateway, token_service):
    draft = await make_draft()
    gateway.add_payment("pay-1", "approved", draft.id)

    resp = await client.get("/api/payments/mercadopago/verify", params={"payment_id": "pay-1"})

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["status"] == "APPROVED"
    assert data["nextAction"] == "go_orders"
    assert data["canRetry"] is False
    assert data["orderNumber"].startswith("MIST-")
    assert data["detailUrl"].startswith(f"https://shop.test/orders/details/{data['orderId']}?token=")

    # 与 webhook 并发或重复确认不会产生第二个订单
    again = (await client.get("/api/payments/mercadopago/verify", params={"collection_id": "pay-1"})).json()["data"]
    assert again["orderId"] == data["orderId"]


@pytest.mark.asyncio
async def test_verify_rejected_payment_allows_retry(client, make_draft, gateway):
    draft = await make_draft()
    gateway.add_payment("pay-1", "rejected", draft.id)
    data = (await client.get("/api/payments/mercadopago/verify", params={"payment_id": "pay-1"})).json()["data"]
    assert data["status"] == "REJECTED"
    assert data["canRetry"] is True
    assert data["nextAction"] == "retry_checkout"
    assert data.get("detailUrl") is None


@pytest.mark.asyncio
async def test_verify_payment_errors(client, gateway):
    resp = await client.get("/api/payments/mercadopago/verify")
    assert resp.status_code == 400

    resp = await client.get("/api/payments/mercadopago/verify", params={"payment_id": "unknown"})
    assert resp.status_code == 502

    gateway.configured = False
    resp = await client.get("/api/payments/mercadopago/verify", params={"payment_id": "pay-1"})
    assert resp.status_code == 503
