"""
Webhook 审计 DTO（管理端）
"""
from datetime import datetime
from typing import Literal, Optional

from pydantic import Field

from application.dtos.base import DTOBase
from domain.webhook.entity import WebhookEvent


class WebhookEventDTO(DTOBase):
    id: str
    provider: str
    event_id: str
    topic: str
    action: str
    resource_id: str
    status: Literal["received", "processed", "failed"]
    retry_count: int
    last_error: Optional[str] = None
    raw_payload_truncated: Optional[str] = None
    processed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_entity(cls, event: WebhookEvent, *, include_payload: bool = False) -> "WebhookEventDTO":
        return cls(
            id=event.id or "",
            provider=event.provider,
            event_id=event.event_id,
            topic=event.topic,
            action=event.action,
            resource_id=event.resource_id,
            status=event.status.value,
            retry_count=event.retry_count,
            last_error=event.last_error,
            raw_payload_truncated=event.raw_payload_truncated if include_payload else None,
            processed_at=event.processed_at,
            created_at=event.created_at,
            updated_at=event.updated_at,
        )


class WebhookListQuery(DTOBase):
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=100)
    status: Optional[Literal["received", "processed", "failed"]] = None
    topic: Optional[str] = Field(default=None, max_length=100)
    q: Optional[str] = Field(default=None, max_length=200)
    date_from: Optional[str] = Field(default=None, alias="from")
    date_to: Optional[str] = Field(default=None, alias="to")


class StatusCount(DTOBase):
    status: str
    count: int


class TopicCount(DTOBase):
    topic: str
    count: int


class WebhookInsightsDTO(DTOBase):
    by_status: list[StatusCount]
    by_topic: list[TopicCount]
    failed_count: int
    total_count: int
    failed_percentage: int
    recent_failed: list[WebhookEventDTO]


class WebhookRetryResultDTO(DTOBase):
    id: str
    status: str
    message: str = "Event reprocessed"
