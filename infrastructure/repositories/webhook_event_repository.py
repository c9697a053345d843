"""
Webhook 事件仓储实现

- 插入使用 INSERT .. ON CONFLICT DO NOTHING（sqlite / postgresql），其他方言回退为
  SAVEPOINT + IntegrityError
- 状态迁移全部为带 WHERE status = .. 的条件 UPDATE
"""
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import func, insert, or_, and_, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from domain.webhook.entity import WebhookEvent, WebhookEventStatus
from domain.webhook.repository import WebhookEventRepository
from infrastructure.models.webhook_event import WebhookEventModel
from core.logging_config import get_logger


logger = get_logger(__name__)

_DIALECT_INSERTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SQLAlchemyWebhookEventRepository(WebhookEventRepository):
    """Webhook 事件仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: WebhookEventModel) -> WebhookEvent:
        return WebhookEvent(
            id=model.id,
            provider=model.provider,
            event_id=model.event_id,
            topic=model.topic or "",
            action=model.action or "",
            resource_id=model.resource_id or "",
            status=WebhookEventStatus(model.status),
            retry_count=model.retry_count or 0,
            last_error=model.last_error,
            raw_payload_truncated=model.raw_payload_truncated,
            processed_at=model.processed_at,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _values(self, event: WebhookEvent) -> dict:
        now = datetime.now(timezone.utc)
        return {
            "id": event.id or str(uuid.uuid4()),
            "provider": event.provider,
            "event_id": event.event_id,
            "topic": event.topic,
            "action": event.action,
            "resource_id": event.resource_id,
            "status": event.status.value,
            "retry_count": event.retry_count,
            "last_error": event.last_error,
            "raw_payload_truncated": event.raw_payload_truncated,
            "created_at": now,
            "updated_at": now,
        }

    async def create_if_absent(self, event: WebhookEvent) -> tuple[WebhookEvent, bool]:
        values = self._values(event)
        dialect_insert = _DIALECT_INSERTS.get(self.session.get_bind().dialect.name)

        if dialect_insert is not None:
            stmt = (
                dialect_insert(WebhookEventModel)
                .values(**values)
                .on_conflict_do_nothing(index_elements=["provider", "event_id"])
                .returning(WebhookEventModel.id)
            )
            inserted_id = (await self.session.execute(stmt)).scalar_one_or_none()
            created = inserted_id is not None
        else:
            try:
                async with self.session.begin_nested():
                    await self.session.execute(insert(WebhookEventModel).values(**values))
                created = True
            except IntegrityError:
                created = False

        stored = await self.get_by_key(event.provider, event.event_id)
        if stored is None:
            raise RuntimeError(f"webhook event {event.provider}:{event.event_id} missing after insert")
        if created:
            logger.info("webhook_event_recorded", event_id=event.event_id, topic=event.topic)
        return stored, created

    async def get_by_id(self, id: str) -> Optional[WebhookEvent]:
        result = await self.session.execute(
            select(WebhookEventModel).where(WebhookEventModel.id == id)
        )
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def get_by_key(self, provider: str, event_id: str) -> Optional[WebhookEvent]:
        result = await self.session.execute(
            select(WebhookEventModel).where(
                WebhookEventModel.provider == provider,
                WebhookEventModel.event_id == event_id,
            )
        )
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def _conditional_update(self, where, values: dict) -> bool:
        result = await self.session.execute(
            update(WebhookEventModel)
            .where(*where)
            .values(updated_at=datetime.now(timezone.utc), **values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def claim(self, id: str, *, stale_before: datetime) -> bool:
        return await self._conditional_update(
            (
                WebhookEventModel.id == id,
                or_(
                    WebhookEventModel.status == WebhookEventStatus.FAILED.value,
                    and_(
                        WebhookEventModel.status == WebhookEventStatus.RECEIVED.value,
                        WebhookEventModel.updated_at < stale_before,
                    ),
                ),
            ),
            {"status": WebhookEventStatus.RECEIVED.value},
        )

    async def mark_processed(self, id: str) -> bool:
        now = datetime.now(timezone.utc)
        return await self._conditional_update(
            (
                WebhookEventModel.id == id,
                WebhookEventModel.status == WebhookEventStatus.RECEIVED.value,
            ),
            {
                "status": WebhookEventStatus.PROCESSED.value,
                "processed_at": now,
                "last_error": None,
            },
        )

    async def mark_failed(self, id: str, error: str) -> bool:
        return await self._conditional_update(
            (
                WebhookEventModel.id == id,
                WebhookEventModel.status == WebhookEventStatus.RECEIVED.value,
            ),
            {
                "status": WebhookEventStatus.FAILED.value,
                "last_error": error,
                "retry_count": WebhookEventModel.retry_count + 1,
            },
        )

    async def search(
        self,
        provider: str,
        *,
        status: Optional[WebhookEventStatus] = None,
        topic: Optional[str] = None,
        q: Optional[str] = None,
        created_from: Optional[datetime] = None,
        created_to: Optional[datetime] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> tuple[list[WebhookEvent], int]:
        conditions = [WebhookEventModel.provider == provider]
        if status is not None:
            conditions.append(WebhookEventModel.status == status.value)
        if topic:
            conditions.append(WebhookEventModel.topic == topic)
        if created_from is not None:
            conditions.append(WebhookEventModel.created_at >= created_from)
        if created_to is not None:
            conditions.append(WebhookEventModel.created_at <= created_to)
        if q:
            pattern = f"%{_escape_like(q.lower())}%"
            conditions.append(
                or_(
                    func.lower(WebhookEventModel.resource_id).like(pattern, escape="\\"),
                    func.lower(WebhookEventModel.event_id).like(pattern, escape="\\"),
                )
            )

        total = (
            await self.session.execute(
                select(func.count()).select_from(WebhookEventModel).where(*conditions)
            )
        ).scalar_one()

        result = await self.session.execute(
            select(WebhookEventModel)
            .where(*conditions)
            .order_by(WebhookEventModel.created_at.desc(), WebhookEventModel.id.desc())
            .offset(skip)
            .limit(limit)
        )
        return [self._to_entity(m) for m in result.scalars().all()], int(total)

    async def list_since(self, provider: str, since: datetime) -> list[WebhookEvent]:
        result = await self.session.execute(
            select(WebhookEventModel)
            .where(
                WebhookEventModel.provider == provider,
                WebhookEventModel.created_at >= since,
            )
            .order_by(WebhookEventModel.created_at.desc())
        )
        return [self._to_entity(m) for m in result.scalars().all()]
