"""
Webhook 事件数据库模型
"""
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Index, Integer, String, Text, UniqueConstraint

from .base import Base


class WebhookEventModel(Base):
    """
    Webhook 事件

    (provider, event_id) 唯一约束是幂等性的基础
    """
    __tablename__ = "webhook_events"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    provider = Column(String(50), nullable=False, comment="支付渠道: mercadopago")
    event_id = Column(String(255), nullable=False, comment="通知ID 或 topic:resource_id:投递ID")
    topic = Column(String(100), nullable=False, default="", index=True)
    action = Column(String(100), nullable=False, default="")
    resource_id = Column(String(100), nullable=False, default="", index=True)
    status = Column(String(20), nullable=False, default="received", index=True, comment="received/processed/failed")
    retry_count = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    raw_payload_truncated = Column(Text, nullable=True, comment="脱敏并截断后的原始负载")
    processed_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("provider", "event_id", name="uq_webhook_events_provider_event_id"),
        Index("ix_webhook_events_provider_created_at", "provider", "created_at"),
    )

    def __repr__(self):
        return f"<WebhookEventModel(id='{self.id}', event_id='{self.event_id}', status='{self.status}')>"
