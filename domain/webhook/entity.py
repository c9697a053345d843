"""
Webhook 事件领域实体 - 记录一次来自支付渠道的异步通知
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


class WebhookEventStatus(str, Enum):
    """事件处理状态：received -> processed | failed"""
    RECEIVED = "received"
    PROCESSED = "processed"
    FAILED = "failed"


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass
class WebhookEvent:
    """
    Webhook 事件

    业务规则：
    1. (provider, event_id) 唯一，重复投递不得重复处理
    2. 每次处理失败 retry_count 加一
    """

    id: Optional[str]
    provider: str
    event_id: str
    topic: str
    action: str
    resource_id: str
    status: WebhookEventStatus = WebhookEventStatus.RECEIVED
    retry_count: int = 0
    last_error: Optional[str] = None
    raw_payload_truncated: Optional[str] = None
    processed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        self.processed_at = _ensure_utc(self.processed_at)
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)

    @property
    def is_processed(self) -> bool:
        return self.status == WebhookEventStatus.PROCESSED

    @property
    def is_failed(self) -> bool:
        return self.status == WebhookEventStatus.FAILED
