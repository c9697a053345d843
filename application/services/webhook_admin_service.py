"""
管理端 Webhook 审计服务 - 列表、详情、重试与统计
"""
from __future__ import annotations

from collections import Counter
from datetime import datetime, time, timedelta, timezone
from typing import Callable, Optional

from application.dtos.webhooks import (
    StatusCount,
    TopicCount,
    WebhookEventDTO,
    WebhookInsightsDTO,
    WebhookListQuery,
    WebhookRetryResultDTO,
)
from application.services.webhook_service import PROVIDER, WebhookService
from core.logging_config import get_logger
from core.response import PaginatedData, paginated_data
from domain.common.exceptions import DomainValidationException, WebhookEventNotFoundException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.webhook.entity import WebhookEventStatus


logger = get_logger(__name__)

INSIGHT_RANGES = {
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
}
RECENT_FAILED_LIMIT = 20


def parse_date_bound(value: Optional[str], *, end_of_day: bool = False) -> Optional[datetime]:
    """
    解析日期过滤条件

    YYYY-MM-DD 视为整天（起始 00:00:00 / 结束 23:59:59.999999 UTC），其他按 ISO 时间解析。
    """
    if not value:
        return None
    s = value.strip()
    try:
        if len(s) == 10:
            day = datetime.strptime(s, "%Y-%m-%d").date()
            bound = time.max if end_of_day else time.min
            return datetime.combine(day, bound, tzinfo=timezone.utc)
        dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
    except ValueError:
        raise DomainValidationException("Fecha inválida", field="to" if end_of_day else "from")
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


class WebhookAdminService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        webhook_service: WebhookService,
        *,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._uow_factory = uow_factory
        self._webhook_service = webhook_service
        self._clock = clock

    async def list_events(self, query: WebhookListQuery) -> PaginatedData:
        created_from = parse_date_bound(query.date_from)
        created_to = parse_date_bound(query.date_to, end_of_day=True)
        skip = (query.page - 1) * query.limit

        async with self._uow_factory(readonly=True) as uow:
            events, total = await uow.webhook_event_repository.search(
                PROVIDER,
                status=WebhookEventStatus(query.status) if query.status else None,
                topic=query.topic or None,
                q=(query.q or "").strip() or None,
                created_from=created_from,
                created_to=created_to,
                skip=skip,
                limit=query.limit,
            )
        items = [WebhookEventDTO.from_entity(e) for e in events]
        return paginated_data(items, total, query.page, query.limit)

    async def get_event(self, id: str) -> WebhookEventDTO:
        async with self._uow_factory(readonly=True) as uow:
            event = await uow.webhook_event_repository.get_by_id(id)
        if event is None:
            raise WebhookEventNotFoundException(id)
        return WebhookEventDTO.from_entity(event, include_payload=True)

    async def retry_event(self, id: str) -> WebhookRetryResultDTO:
        event = await self._webhook_service.retry(id)
        logger.info("admin_webhook_retried", webhook_event_id=id, status=event.status.value)
        return WebhookRetryResultDTO(id=event.id, status=event.status.value)

    async def insights(self, range_key: str = "7d") -> WebhookInsightsDTO:
        window = INSIGHT_RANGES.get(range_key, INSIGHT_RANGES["7d"])
        since = self._clock() - window
        async with self._uow_factory(readonly=True) as uow:
            events = await uow.webhook_event_repository.list_since(PROVIDER, since)

        by_status = Counter(e.status.value for e in events)
        by_topic = Counter(e.topic or "" for e in events)
        failed = [e for e in events if e.status == WebhookEventStatus.FAILED]
        total = len(events)
        # 四舍五入到整数（0.5 向上）
        failed_pct = int(len(failed) * 100 / total + 0.5) if total else 0

        epoch = datetime.min.replace(tzinfo=timezone.utc)
        failed.sort(key=lambda e: e.updated_at or epoch, reverse=True)

        return WebhookInsightsDTO(
            by_status=[StatusCount(status=s, count=c) for s, c in by_status.items()],
            by_topic=[TopicCount(topic=t, count=c) for t, c in by_topic.items()],
            failed_count=len(failed),
            total_count=total,
            failed_percentage=failed_pct,
            recent_failed=[WebhookEventDTO.from_entity(e) for e in failed[:RECENT_FAILED_LIMIT]],
        )
