"""
Mercado Pago webhook 接收与处理

流程：
1. 解析通知（JSON / form-urlencoded / 旧版查询参数）
2. 按 (provider, event_id) 插入；已 processed 的重复投递直接确认
3. 认领事件后到 Mercado Pago 查询真实状态（不在数据库事务内）
4. 在同一事务中应用结果并标记 processed；失败则标记 failed 且 retry_count + 1
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Mapping, Optional
from urllib.parse import parse_qs

from application.dtos.payments import WebhookNotification
from application.ports.payment_gateway import PaymentGateway
from application.services.order_fulfillment_service import OrderFulfillmentService
from application.utils.payload import DEFAULT_MAX_CHARS, sanitize_payload
from core.logging_config import get_logger
from domain.common.exceptions import (
    WebhookEventNotFoundException,
    WebhookEventNotRetryableException,
    WebhookProcessingFailedException,
    WebhookSignatureInvalidException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.webhook.entity import WebhookEvent, WebhookEventStatus


logger = get_logger(__name__)

PROVIDER = "mercadopago"
MAX_ERROR_CHARS = 500

PAYMENT_TOPICS = frozenset({"payment", "payments"})
CHARGEBACK_TOPICS = frozenset({"chargebacks", "topic_chargebacks_wh"})
CLAIM_TOPICS = frozenset({"claims", "topic_claims_integration_wh"})


class IngestStatus:
    PROCESSED = "processed"
    DUPLICATE = "duplicate"
    IN_FLIGHT = "in_flight"
    IGNORED = "ignored"
    FAILED = "failed"


@dataclass
class IngestResult:
    status: str
    event_id: Optional[str] = None
    webhook_event_id: Optional[str] = None
    error: Optional[str] = None

    @property
    def acknowledged(self) -> bool:
        return self.status != IngestStatus.FAILED


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _str_or_empty(v) -> str:
    if v is None:
        return ""
    return str(v).strip()


def parse_notification(
    body: bytes,
    content_type: Optional[str],
    query: Mapping[str, str],
    request_id: Optional[str] = None,
) -> WebhookNotification:
    """
    解析通知

    - JSON: {"id", "type"|"topic", "action", "data": {"id"}}
    - form-urlencoded: type / topic / id / data（JSON 字符串）或 data.id
    - 旧版 IPN: ?topic=payment&id=123（id 为资源ID）
    请求体字段优先，缺失时回退到查询参数。
    无通知ID的投递以 request_id（x-request-id）区分，见 WebhookNotification.event_id。
    """
    raw_text = body.decode("utf-8", errors="replace") if body else ""
    payload: dict = {}

    if content_type and "application/x-www-form-urlencoded" in content_type.lower():
        form = {k: v[0] for k, v in parse_qs(raw_text, keep_blank_values=True).items() if v}
        data = {}
        data_raw = form.get("data")
        if data_raw:
            try:
                parsed = json.loads(data_raw)
                data = parsed if isinstance(parsed, dict) else {}
            except ValueError:
                data = {}
        if not data.get("id") and form.get("data.id"):
            data = {"id": form["data.id"]}
        payload = {
            "id": form.get("id"),
            "type": form.get("type"),
            "topic": form.get("topic"),
            "action": form.get("action"),
            "data": data,
        }
        raw_text = json.dumps(form, ensure_ascii=False)
    elif raw_text.strip():
        try:
            parsed = json.loads(raw_text)
            payload = parsed if isinstance(parsed, dict) else {}
        except ValueError:
            payload = {}

    data = payload.get("data") if isinstance(payload.get("data"), dict) else {}
    topic = _str_or_empty(payload.get("topic") or payload.get("type"))
    resource_id = _str_or_empty(data.get("id"))
    notification_id = _str_or_empty(payload.get("id")) or None

    if not resource_id and notification_id and not data:
        # 无 data 的请求体中 id 即资源ID，不能再作为去重键
        resource_id = notification_id
        notification_id = None

    if not topic:
        topic = _str_or_empty(query.get("topic") or query.get("type"))
    if not resource_id:
        # 旧版查询参数通知不携带通知ID
        resource_id = _str_or_empty(query.get("data.id") or query.get("id"))

    return WebhookNotification(
        topic=topic,
        action=_str_or_empty(payload.get("action")),
        resource_id=resource_id,
        notification_id=notification_id,
        request_id=_str_or_empty(request_id) or None,
        raw_body=raw_text,
    )


class WebhookService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        gateway: PaymentGateway,
        fulfillment: OrderFulfillmentService,
        *,
        processing_lease_seconds: int = 120,
        max_payload_chars: int = DEFAULT_MAX_CHARS,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._uow_factory = uow_factory
        self._gateway = gateway
        self._fulfillment = fulfillment
        self._lease = timedelta(seconds=processing_lease_seconds)
        self._max_payload_chars = max_payload_chars
        self._clock = clock

    def verify_signature(
        self,
        notification: WebhookNotification,
        x_signature: Optional[str],
        x_request_id: Optional[str],
    ) -> None:
        """配置了 webhook 密钥且携带 x-signature 时必须验签通过；缺少签名头仅告警"""
        if not self._gateway.has_webhook_secret or not notification.resource_id:
            return
        if not x_signature:
            logger.warning("webhook_signature_missing", topic=notification.topic)
            return
        if not self._gateway.verify_signature(x_signature, x_request_id, notification.resource_id):
            logger.warning(
                "webhook_signature_invalid",
                topic=notification.topic,
                resource_id=notification.resource_id,
            )
            raise WebhookSignatureInvalidException(PROVIDER)

    async def ingest(self, notification: WebhookNotification) -> IngestResult:
        if not notification.topic or not notification.resource_id:
            logger.warning(
                "webhook_notification_incomplete",
                topic=notification.topic,
                resource_id=notification.resource_id,
            )
            return IngestResult(status=IngestStatus.IGNORED)

        candidate = WebhookEvent(
            id=None,
            provider=PROVIDER,
            event_id=notification.event_id,
            topic=notification.topic,
            action=notification.action,
            resource_id=notification.resource_id,
            raw_payload_truncated=sanitize_payload(notification.raw_body, self._max_payload_chars) or None,
        )

        async with self._uow_factory() as uow:
            event, created = await uow.webhook_event_repository.create_if_absent(candidate)

        if event.is_processed:
            logger.info("webhook_event_duplicate", event_id=event.event_id, webhook_event_id=event.id)
            return IngestResult(status=IngestStatus.DUPLICATE, event_id=event.event_id, webhook_event_id=event.id)

        if not created:
            async with self._uow_factory() as uow:
                claimed = await uow.webhook_event_repository.claim(
                    event.id, stale_before=self._clock() - self._lease
                )
            if not claimed:
                logger.info("webhook_event_in_flight", event_id=event.event_id, status=event.status.value)
                return IngestResult(status=IngestStatus.IN_FLIGHT, event_id=event.event_id, webhook_event_id=event.id)

        ok, error = await self.process_event(event)
        return IngestResult(
            status=IngestStatus.PROCESSED if ok else IngestStatus.FAILED,
            event_id=event.event_id,
            webhook_event_id=event.id,
            error=error,
        )

    async def process_event(self, event: WebhookEvent) -> tuple[bool, Optional[str]]:
        """
        处理一个已被当前调用方认领（status=received）的事件

        Returns:
            (是否成功, 错误信息)
        """
        topic = event.topic.lower()
        try:
            if topic in PAYMENT_TOPICS:
                await self._handle_payment(event)
            elif topic in CHARGEBACK_TOPICS:
                await self._handle_chargeback(event)
            elif topic in CLAIM_TOPICS:
                await self._handle_claim(event)
            else:
                logger.info("webhook_topic_ignored", topic=event.topic, event_id=event.event_id)
                await self._mark_processed(event)
        except Exception as e:
            error = (str(e) or type(e).__name__)[:MAX_ERROR_CHARS]
            async with self._uow_factory() as uow:
                await uow.webhook_event_repository.mark_failed(event.id, error)
            logger.warning(
                "webhook_event_failed",
                event_id=event.event_id,
                webhook_event_id=event.id,
                topic=event.topic,
                error=error,
                exc_info=not isinstance(e, WebhookProcessingFailedException),
            )
            return False, error
        return True, None

    def _ensure_configured(self) -> None:
        if not self._gateway.is_configured:
            raise WebhookProcessingFailedException("Mercado Pago not configured")

    async def _mark_processed(self, event: WebhookEvent, uow: Optional[AbstractUnitOfWork] = None) -> None:
        if uow is None:
            async with self._uow_factory() as uow_local:
                marked = await uow_local.webhook_event_repository.mark_processed(event.id)
        else:
            marked = await uow.webhook_event_repository.mark_processed(event.id)
        if not marked:
            logger.warning("webhook_event_mark_processed_skipped", webhook_event_id=event.id)
        else:
            logger.info("webhook_event_processed", event_id=event.event_id, topic=event.topic)

    async def _handle_payment(self, event: WebhookEvent) -> None:
        self._ensure_configured()
        payment = await self._gateway.get_payment(event.resource_id)
        if payment is None:
            raise WebhookProcessingFailedException("Payment not found in MP")
        async with self._uow_factory() as uow:
            outcome = await self._fulfillment.apply_payment(payment, uow=uow)
            await self._mark_processed(event, uow)
        logger.info(
            "webhook_payment_applied",
            payment_id=payment.id,
            status=outcome.status,
            order_id=outcome.order_id,
            already_processed=outcome.already_processed,
        )

    async def _handle_chargeback(self, event: WebhookEvent) -> None:
        self._ensure_configured()
        chargeback = await self._gateway.get_chargeback(event.resource_id)
        if chargeback is None:
            raise WebhookProcessingFailedException("Chargeback not found in MP")
        async with self._uow_factory() as uow:
            await self._fulfillment.apply_chargeback(chargeback, uow=uow)
            await self._mark_processed(event, uow)

    async def _handle_claim(self, event: WebhookEvent) -> None:
        self._ensure_configured()
        claim = await self._gateway.get_claim(event.resource_id)
        logger.info(
            "webhook_claim_received",
            claim_id=event.resource_id,
            found=claim is not None,
            claim_status=claim.status if claim else None,
            claim_type=claim.type if claim else None,
        )
        await self._mark_processed(event)

    async def retry(self, id: str) -> WebhookEvent:
        """管理端重试：仅允许 failed 事件；处理失败抛出 WebhookProcessingFailedException"""
        async with self._uow_factory(readonly=True) as uow:
            event = await uow.webhook_event_repository.get_by_id(id)
        if event is None:
            raise WebhookEventNotFoundException(id)
        if event.status != WebhookEventStatus.FAILED:
            raise WebhookEventNotRetryableException(event.status.value)

        async with self._uow_factory() as uow:
            claimed = await uow.webhook_event_repository.claim(id, stale_before=self._clock() - self._lease)
        if not claimed:
            # 认领期间被并发请求抢先处理
            async with self._uow_factory(readonly=True) as uow:
                current = await uow.webhook_event_repository.get_by_id(id)
            raise WebhookEventNotRetryableException(current.status.value if current else event.status.value)

        logger.info("webhook_event_retry", webhook_event_id=id, topic=event.topic, retry_count=event.retry_count)
        ok, error = await self.process_event(event)
        if not ok:
            raise WebhookProcessingFailedException(error or "Webhook processing failed")

        async with self._uow_factory(readonly=True) as uow:
            refreshed = await uow.webhook_event_repository.get_by_id(id)
        return refreshed or event
