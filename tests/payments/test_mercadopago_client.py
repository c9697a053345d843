import json
from decimal import Decimal

import httpx
import pytest
from pydantic import ValidationError

from application.dtos.payments import MercadoPagoPayment, PreferenceItem, PreferenceRequest
from infrastructure.external.payments.mercadopago_client import MercadoPagoClient


NO_RETRY = {"max": 0, "base": 0.0}


def _client(handler, **kwargs) -> MercadoPagoClient:
    kwargs.setdefault("access_token", "APP_USR-test")
    kwargs.setdefault("webhook_secret", "")
    kwargs.setdefault("retry", NO_RETRY)
    return MercadoPagoClient(api_base="https://api.mp.test", transport=httpx.MockTransport(handler), **kwargs)


@pytest.mark.asyncio
async def test_get_payment_sends_bearer_and_parses():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers.get("Authorization")
        seen["path"] = request.url.path
        return httpx.Response(200, json={
            "id": 123456,
            "status": "APPROVED",
            "external_reference": "draft-1",
            "metadata": {"preference_id": "pref-1"},
            "transaction_amount": 382.0,
        })

    client = _client(handler)
    payment = await client.get_payment("123456")
    await client.aclose()

    assert seen == {"auth": "Bearer APP_USR-test", "path": "/v1/payments/123456"}
    assert payment is not None
    assert payment.id == "123456"
    assert payment.status == "approved"
    assert payment.external_reference == "draft-1"
    assert payment.preference_id == "pref-1"


@pytest.mark.asyncio
async def test_non_2xx_returns_none():
    client = _client(lambda request: httpx.Response(500, json={"message": "boom"}))
    assert await client.get_payment("1") is None
    await client.aclose()


@pytest.mark.asyncio
async def test_not_found_returns_none():
    client = _client(lambda request: httpx.Response(404, json={"message": "not found"}))
    assert await client.get_chargeback("1") is None
    await client.aclose()


@pytest.mark.asyncio
async def test_invalid_json_returns_none():
    client = _client(lambda request: httpx.Response(200, content=b"<html>"))
    assert await client.get_payment("1") is None
    await client.aclose()


@pytest.mark.asyncio
async def test_float_payment_id_is_rejected_not_coerced():
    client = _client(lambda request: httpx.Response(200, json={"id": 9007199254740993.0, "status": "approved"}))
    assert await client.get_payment("9007199254740993") is None
    await client.aclose()


def test_integer_ids_are_stringified_exactly():
    payment = MercadoPagoPayment.model_validate({"id": 9007199254740993, "external_reference": 42})
    assert payment.id == "9007199254740993"
    assert payment.external_reference == "42"

    with pytest.raises(ValidationError):
        MercadoPagoPayment.model_validate({"id": 1.5})
    with pytest.raises(ValidationError):
        MercadoPagoPayment.model_validate({"id": True})


@pytest.mark.asyncio
async def test_timeout_is_retried_then_returns_none():
    calls = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        raise httpx.ReadTimeout("timed out", request=request)

    client = _client(handler, retry={"max": 1, "base": 0.0})
    assert await client.get_payment("1") is None
    assert calls["n"] == 2
    await client.aclose()


@pytest.mark.asyncio
async def test_transient_error_recovers_on_retry():
    calls = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        if calls["n"] == 1:
            raise httpx.ConnectError("refused", request=request)
        return httpx.Response(200, json={"id": "1", "status": "pending"})

    client = _client(handler, retry={"max": 2, "base": 0.0})
    payment = await client.get_payment("1")
    assert payment is not None and payment.status == "pending"
    await client.aclose()


@pytest.mark.asyncio
async def test_unconfigured_client_skips_http():
    def handler(request: httpx.Request) -> httpx.Response:  # pragma: no cover - must not be called
        raise AssertionError("no request expected")

    client = _client(handler, access_token="")
    assert not client.is_configured
    assert await client.get_payment("1") is None
    assert await client.create_preference(
        PreferenceRequest(external_reference="d1", items=[])
    ) is None


@pytest.mark.asyncio
async def test_chargeback_payments_are_strings():
    client = _client(lambda request: httpx.Response(200, json={"id": 77, "payments": [111, {"id": 222}]}))
    chargeback = await client.get_chargeback("77")
    await client.aclose()
    assert chargeback is not None
    assert chargeback.id == "77"
    assert chargeback.payments == ["111", "222"]


@pytest.mark.asyncio
async def test_create_preference_body():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["path"] = request.url.path
        seen["idempotency"] = request.headers.get("X-Idempotency-Key")
        seen["body"] = json.loads(request.content)
        return httpx.Response(201, json={"id": "pref-1", "init_point": "https://mp.test/init"})

    client = _client(handler)
    result = await client.create_preference(PreferenceRequest(
        external_reference="draft-1",
        items=[PreferenceItem(id="p-1", title="Vela", quantity=2, unit_price=Decimal("100.00"))],
        payer_email="ana@example.com",
        shipping_cost=Decimal("150"),
        back_urls={"success": "https://shop.test/ok"},
        notification_url="https://api.shop.test/api/webhooks/mercadopago",
    ))
    await client.aclose()

    assert result is not None
    assert result.id == "pref-1" and result.init_point == "https://mp.test/init"
    assert seen["method"] == "POST" and seen["path"] == "/checkout/preferences"
    assert seen["idempotency"] == "draft-draft-1"
    body = seen["body"]
    assert body["external_reference"] == "draft-1"
    assert body["items"][0] == {
        "id": "p-1", "title": "Vela", "quantity": 2, "unit_price": 100.0, "currency_id": "MXN",
    }
    assert body["shipments"]["cost"] == 150.0
    assert body["auto_return"] == "approved"
    assert body["notification_url"] == "https://api.shop.test/api/webhooks/mercadopago"
