import json
from datetime import datetime, timedelta, timezone

import pytest

from application.dtos.payments import MercadoPagoChargeback, WebhookNotification
from application.services.webhook_service import IngestStatus, WebhookService, parse_notification
from domain.common.exceptions import (
    WebhookEventNotFoundException,
    WebhookEventNotRetryableException,
    WebhookProcessingFailedException,
    WebhookSignatureInvalidException,
)
from domain.order.entity import DraftStatus, OrderPaymentStatus
from domain.webhook.entity import WebhookEvent, WebhookEventStatus
from infrastructure.external.payments.mercadopago_client import compute_signature


WEBHOOK_SECRET = "whsec-test"


def _notification(resource_id: str, *, notification_id: str = "n-1", topic: str = "payment") -> WebhookNotification:
    body = {"id": notification_id, "type": topic, "action": "payment.updated", "data": {"id": resource_id}}
    return WebhookNotification(
        topic=topic,
        action="payment.updated",
        resource_id=resource_id,
        notification_id=notification_id,
        raw_body=json.dumps(body),
    )


async def _event(uow_factory, event_id: str) -> WebhookEvent:
    async with uow_factory(readonly=True) as uow:
        return await uow.webhook_event_repository.get_by_key("mercadopago", event_id)


async def _draft(uow_factory, draft_id: str):
    async with uow_factory(readonly=True) as uow:
        return await uow.order_draft_repository.get_by_id(draft_id)


async def _orders_for(uow_factory, payment_id: str):
    async with uow_factory(readonly=True) as uow:
        return await uow.order_repository.list_by_payment_ids([payment_id])


# ---------------------------------------------------------------------------
# parse_notification
# ---------------------------------------------------------------------------

def test_parse_json_notification():
    body = json.dumps({"id": 999, "type": "payment", "action": "payment.created", "data": {"id": "123"}}).encode()
    n = parse_notification(body, "application/json", {})
    assert (n.topic, n.action, n.resource_id, n.notification_id) == ("payment", "payment.created", "123", "999")
    assert n.event_id == "999"


def test_parse_form_with_data_id():
    n = parse_notification(b"type=payment&data.id=123", "application/x-www-form-urlencoded", {})
    assert n.topic == "payment" and n.resource_id == "123"
    assert n.notification_id is None
    assert n.event_id.startswith("payment:123:")


def test_parse_form_with_json_data():
    body = b'id=7&type=payment&action=payment.updated&data=%7B%22id%22%3A%22456%22%7D'
    n = parse_notification(body, "application/x-www-form-urlencoded; charset=utf-8", {})
    assert (n.topic, n.action, n.resource_id, n.event_id) == ("payment", "payment.updated", "456", "7")


def test_parse_legacy_query_notification():
    n = parse_notification(b"", None, {"topic": "payment", "id": "123"})
    assert n.topic == "payment" and n.resource_id == "123"
    assert n.notification_id is None


def test_notifications_without_id_are_keyed_per_delivery():
    query = {"topic": "payment", "id": "123"}
    first = parse_notification(b"", None, query)
    again = parse_notification(b"", None, query)
    assert first.event_id != again.event_id

    redelivered = [parse_notification(b"", None, query, request_id="req-7") for _ in range(2)]
    assert redelivered[0].event_id == redelivered[1].event_id == "payment:123:req-7"


def test_parse_body_without_data_uses_id_as_resource():
    n = parse_notification(b'{"id": "55", "topic": "chargebacks"}', "application/json", {})
    assert n.topic == "chargebacks" and n.resource_id == "55"
    assert n.notification_id is None
    assert n.event_id != "55"


def test_parse_garbage_body_falls_back_to_query():
    n = parse_notification(b"not json", "application/json", {"type": "payment", "data.id": "9"})
    assert n.topic == "payment" and n.resource_id == "9"


# ---------------------------------------------------------------------------
# ingest
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_approved_payment_converts_draft_once(webhook_service, gateway, make_draft, uow_factory):
    draft = await make_draft()
    gateway.add_payment("pay-1", "approved", draft.id)

    first = await webhook_service.ingest(_notification("pay-1"))
    assert first.status == IngestStatus.PROCESSED
    second = await webhook_service.ingest(_notification("pay-1"))
    assert second.status == IngestStatus.DUPLICATE
    assert second.acknowledged
    assert gateway.payment_lookups == 1

    stored = await _draft(uow_factory, draft.id)
    assert stored.status == DraftStatus.CONVERTED
    assert stored.order_number.startswith("MIST-")
    orders = await _orders_for(uow_factory, "pay-1")
    assert len(orders) == 1
    assert orders[0].id == stored.converted_order_id
    assert orders[0].payment_status == OrderPaymentStatus.PAID
    assert orders[0].total_amount == draft.total_amount

    event = await _event(uow_factory, "n-1")
    assert event.status == WebhookEventStatus.PROCESSED
    assert event.processed_at is not None
    assert event.retry_count == 0


@pytest.mark.asyncio
async def test_distinct_notifications_for_same_payment_create_one_order(webhook_service, gateway, make_draft, uow_factory):
    draft = await make_draft()
    gateway.add_payment("pay-1", "approved", draft.id)

    await webhook_service.ingest(_notification("pay-1", notification_id="n-1"))
    result = await webhook_service.ingest(_notification("pay-1", notification_id="n-2"))

    assert result.status == IngestStatus.PROCESSED
    assert len(await _orders_for(uow_factory, "pay-1")) == 1


@pytest.mark.asyncio
async def test_legacy_ipn_after_refund_updates_order(webhook_service, gateway, make_draft, uow_factory):
    draft = await make_draft()
    gateway.add_payment("pay-9", "approved", draft.id)
    ipn = {"topic": "payment", "id": "pay-9"}

    first = await webhook_service.ingest(parse_notification(b"", None, ipn))
    assert first.status == IngestStatus.PROCESSED
    assert (await _orders_for(uow_factory, "pay-9"))[0].payment_status == OrderPaymentStatus.PAID

    gateway.add_payment("pay-9", "refunded", draft.id)
    second = await webhook_service.ingest(parse_notification(b"", None, ipn))

    assert second.status == IngestStatus.PROCESSED
    assert gateway.payment_lookups == 2
    orders = await _orders_for(uow_factory, "pay-9")
    assert len(orders) == 1
    assert orders[0].payment_status == OrderPaymentStatus.REFUNDED


@pytest.mark.asyncio
async def test_legacy_ipn_redelivery_with_same_request_id_is_duplicate(webhook_service, gateway, make_draft):
    draft = await make_draft()
    gateway.add_payment("pay-9", "approved", draft.id)
    ipn = {"topic": "payment", "id": "pay-9"}

    await webhook_service.ingest(parse_notification(b"", None, ipn, request_id="req-1"))
    again = await webhook_service.ingest(parse_notification(b"", None, ipn, request_id="req-1"))

    assert again.status == IngestStatus.DUPLICATE
    assert gateway.payment_lookups == 1


@pytest.mark.asyncio
async def test_pending_payment_leaves_draft_pending(webhook_service, gateway, make_draft, uow_factory):
    draft = await make_draft()
    gateway.add_payment("pay-1", "in_process", draft.id)

    result = await webhook_service.ingest(_notification("pay-1"))

    assert result.status == IngestStatus.PROCESSED
    assert (await _draft(uow_factory, draft.id)).status == DraftStatus.PENDING
    assert await _orders_for(uow_factory, "pay-1") == []


@pytest.mark.asyncio
async def test_lookup_failure_marks_event_failed(webhook_service, uow_factory):
    result = await webhook_service.ingest(_notification("missing"))

    assert result.status == IngestStatus.FAILED
    assert not result.acknowledged
    event = await _event(uow_factory, "n-1")
    assert event.status == WebhookEventStatus.FAILED
    assert event.retry_count == 1
    assert event.last_error == "Payment not found in MP"

    # 重投会重新认领失败事件
    again = await webhook_service.ingest(_notification("missing"))
    assert again.status == IngestStatus.FAILED
    assert (await _event(uow_factory, "n-1")).retry_count == 2


@pytest.mark.asyncio
async def test_unconfigured_gateway_marks_event_failed(webhook_service, gateway, uow_factory):
    gateway.configured = False
    result = await webhook_service.ingest(_notification("pay-1"))
    assert result.status == IngestStatus.FAILED
    assert (await _event(uow_factory, "n-1")).last_error == "Mercado Pago not configured"


@pytest.mark.asyncio
async def test_received_event_within_lease_is_in_flight(webhook_service, uow_factory, gateway, make_draft):
    draft = await make_draft()
    gateway.add_payment("pay-1", "approved", draft.id)
    async with uow_factory() as uow:
        await uow.webhook_event_repository.create_if_absent(WebhookEvent(
            id=None, provider="mercadopago", event_id="n-1", topic="payment", action="", resource_id="pay-1",
        ))

    result = await webhook_service.ingest(_notification("pay-1"))

    assert result.status == IngestStatus.IN_FLIGHT
    assert result.acknowledged
    assert gateway.payment_lookups == 0


@pytest.mark.asyncio
async def test_stale_received_event_is_reclaimed(uow_factory, gateway, fulfillment, make_draft):
    draft = await make_draft()
    gateway.add_payment("pay-1", "approved", draft.id)
    async with uow_factory() as uow:
        await uow.webhook_event_repository.create_if_absent(WebhookEvent(
            id=None, provider="mercadopago", event_id="n-1", topic="payment", action="", resource_id="pay-1",
        ))
    later = WebhookService(
        uow_factory,
        gateway,
        fulfillment,
        processing_lease_seconds=60,
        clock=lambda: datetime.now(timezone.utc) + timedelta(minutes=5),
    )

    result = await later.ingest(_notification("pay-1"))

    assert result.status == IngestStatus.PROCESSED
    assert (await _draft(uow_factory, draft.id)).status == DraftStatus.CONVERTED


@pytest.mark.asyncio
async def test_incomplete_notification_is_ignored(webhook_service, uow_factory):
    result = await webhook_service.ingest(WebhookNotification(topic="payment", resource_id=""))
    assert result.status == IngestStatus.IGNORED
    assert result.acknowledged


@pytest.mark.asyncio
async def test_unknown_topic_is_recorded_as_processed(webhook_service, uow_factory):
    result = await webhook_service.ingest(_notification("mo-1", topic="merchant_order"))
    assert result.status == IngestStatus.PROCESSED
    assert (await _event(uow_factory, "n-1")).status == WebhookEventStatus.PROCESSED


@pytest.mark.asyncio
async def test_chargeback_flags_order(webhook_service, gateway, make_draft, uow_factory):
    draft = await make_draft()
    gateway.add_payment("pay-1", "approved", draft.id)
    await webhook_service.ingest(_notification("pay-1"))
    gateway.chargebacks["cb-1"] = MercadoPagoChargeback(id="cb-1", payments=["pay-1"])

    result = await webhook_service.ingest(_notification("cb-1", notification_id="n-2", topic="chargebacks"))

    assert result.status == IngestStatus.PROCESSED
    orders = await _orders_for(uow_factory, "pay-1")
    assert orders[0].payment_status == OrderPaymentStatus.CHARGED_BACK


@pytest.mark.asyncio
async def test_claim_is_logged_and_processed(webhook_service, uow_factory):
    result = await webhook_service.ingest(_notification("cl-1", topic="topic_claims_integration_wh"))
    assert result.status == IngestStatus.PROCESSED


@pytest.mark.asyncio
async def test_payload_is_stored_sanitized(webhook_service, uow_factory):
    n = _notification("missing")
    n.raw_body = json.dumps({"id": "n-1", "data": {"id": "missing"}, "access_token": "APP_USR-secret"})
    await webhook_service.ingest(n)
    stored = (await _event(uow_factory, "n-1")).raw_payload_truncated
    assert "APP_USR-secret" not in stored
    assert "[REDACTED]" in stored


# ---------------------------------------------------------------------------
# retry
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_retry_processes_failed_event(webhook_service, gateway, make_draft, uow_factory):
    draft = await make_draft()
    await webhook_service.ingest(_notification("pay-1"))
    event = await _event(uow_factory, "n-1")
    assert event.status == WebhookEventStatus.FAILED

    gateway.add_payment("pay-1", "approved", draft.id)
    retried = await webhook_service.retry(event.id)

    assert retried.status == WebhookEventStatus.PROCESSED
    assert retried.last_error is None
    assert (await _draft(uow_factory, draft.id)).status == DraftStatus.CONVERTED


@pytest.mark.asyncio
async def test_retry_failure_increments_retry_count(webhook_service, uow_factory):
    await webhook_service.ingest(_notification("missing"))
    event = await _event(uow_factory, "n-1")

    with pytest.raises(WebhookProcessingFailedException):
        await webhook_service.retry(event.id)

    event = await _event(uow_factory, "n-1")
    assert event.status == WebhookEventStatus.FAILED
    assert event.retry_count == 2


@pytest.mark.asyncio
async def test_retry_rejects_processed_and_missing(webhook_service, uow_factory):
    await webhook_service.ingest(_notification("mo-1", topic="merchant_order"))
    event = await _event(uow_factory, "n-1")

    with pytest.raises(WebhookEventNotRetryableException) as exc_info:
        await webhook_service.retry(event.id)
    assert exc_info.value.details == {"status": "processed"}

    with pytest.raises(WebhookEventNotFoundException):
        await webhook_service.retry("does-not-exist")


# ---------------------------------------------------------------------------
# signature
# ---------------------------------------------------------------------------

def test_signature_checked_only_when_secret_configured(webhook_service, gateway):
    n = _notification("pay-1")
    # 未配置密钥：跳过
    webhook_service.verify_signature(n, "ts=1,v1=bad", "req-1")

    gateway.webhook_secret = WEBHOOK_SECRET
    with pytest.raises(WebhookSignatureInvalidException):
        webhook_service.verify_signature(n, "ts=1,v1=bad", "req-1")

    # 缺少签名头只告警
    webhook_service.verify_signature(n, None, "req-1")

    v1 = compute_signature(WEBHOOK_SECRET, "pay-1", "req-1", "1")
    webhook_service.verify_signature(n, f"ts=1,v1={v1}", "req-1")


# ---------------------------------------------------------------------------
# provider failures through the real HTTP client
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
@pytest.mark.parametrize("failure", ["http_500", "timeout"])
async def test_provider_failure_marks_event_failed(uow_factory, fulfillment, failure):
    import httpx

    from infrastructure.external.payments.mercadopago_client import MercadoPagoClient

    def handler(request: httpx.Request) -> httpx.Response:
        if failure == "timeout":
            raise httpx.ReadTimeout("timed out", request=request)
        return httpx.Response(500, json={"message": "internal_error"})

    client = MercadoPagoClient(
        access_token="APP_USR-test",
        webhook_secret="",
        api_base="https://api.mp.test",
        transport=httpx.MockTransport(handler),
        retry={"max": 0, "base": 0.0},
    )
    service = WebhookService(uow_factory, client, fulfillment)

    result = await service.ingest(_notification("pay-500"))
    await client.aclose()

    assert result.status == IngestStatus.FAILED
    event = await _event(uow_factory, "n-1")
    assert event.status == WebhookEventStatus.FAILED
    assert event.retry_count == 1
    assert event.last_error == "Payment not found in MP"
