"""
Unit of Work 抽象定义

一次 `async with uow:` 即一个数据库事务：正常退出提交，异常退出回滚。
readonly=True 时不开启显式事务、也不提交，适用于纯查询。
"""
from __future__ import annotations

from abc import ABC, abstractmethod

from domain.order.repository import OrderDraftRepository, OrderRepository
from domain.webhook.repository import WebhookEventRepository


class AbstractUnitOfWork(ABC):
    """应用层事务边界：草稿、订单与 webhook 事件仓储共享同一事务"""

    order_draft_repository: OrderDraftRepository
    order_repository: OrderRepository
    webhook_event_repository: WebhookEventRepository

    def __init__(self, *, readonly: bool = False) -> None:
        self._readonly = readonly
        self._committed = False

    @property
    def readonly(self) -> bool:
        return self._readonly

    async def __aenter__(self) -> "AbstractUnitOfWork":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc is not None:
            await self.rollback()
        elif not self._readonly and not self._committed:
            await self.commit()

    @abstractmethod
    async def commit(self) -> None:
        ...

    @abstractmethod
    async def rollback(self) -> None:
        ...
