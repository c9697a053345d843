"""
Webhook 事件仓储接口

所有状态迁移均为条件写入（compare-and-set），避免并发重复投递时的读后写竞争。
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from .entity import WebhookEvent, WebhookEventStatus


class WebhookEventRepository(ABC):
    """Webhook 事件仓储抽象接口"""

    @abstractmethod
    async def create_if_absent(self, event: WebhookEvent) -> tuple[WebhookEvent, bool]:
        """按 (provider, event_id) 插入；已存在时返回现有记录。第二个值表示是否新插入"""
        pass

    @abstractmethod
    async def get_by_id(self, id: str) -> Optional[WebhookEvent]:
        """根据主键获取事件"""
        pass

    @abstractmethod
    async def get_by_key(self, provider: str, event_id: str) -> Optional[WebhookEvent]:
        """根据 (provider, event_id) 获取事件"""
        pass

    @abstractmethod
    async def claim(self, id: str, *, stale_before: datetime) -> bool:
        """
        认领事件以进行处理：failed 或 超过租约时间的 received -> received。
        仅当本次调用成功认领时返回 True
        """
        pass

    @abstractmethod
    async def mark_processed(self, id: str) -> bool:
        """received -> processed"""
        pass

    @abstractmethod
    async def mark_failed(self, id: str, error: str) -> bool:
        """received -> failed，记录错误并将 retry_count 加一"""
        pass

    @abstractmethod
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
        """按条件分页查询，按创建时间倒序；返回 (items, total)"""
        pass

    @abstractmethod
    async def list_since(self, provider: str, since: datetime) -> list[WebhookEvent]:
        """获取指定时间之后创建的全部事件"""
        pass
