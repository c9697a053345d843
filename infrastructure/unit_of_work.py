"""SQLAlchemy Unit of Work 实现"""
from __future__ import annotations

from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from domain.common.unit_of_work import AbstractUnitOfWork
from infrastructure.database import AsyncSessionLocal
from infrastructure.repositories.order_repository import (
    SQLAlchemyOrderDraftRepository,
    SQLAlchemyOrderRepository,
)
from infrastructure.repositories.webhook_event_repository import (
    SQLAlchemyWebhookEventRepository,
)


class SQLAlchemyUnitOfWork(AbstractUnitOfWork):
    """
    每个 UoW 实例独占一个会话

    不在 UoW 内调用外部 HTTP（Mercado Pago 查询在事务外完成），避免长事务持有锁。
    """

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession] = AsyncSessionLocal,
        *,
        readonly: bool = False,
    ) -> None:
        super().__init__(readonly=readonly)
        self._session_factory = session_factory
        self.session: Optional[AsyncSession] = None

    async def __aenter__(self) -> "SQLAlchemyUnitOfWork":
        self.session = self._session_factory()
        self.order_draft_repository = SQLAlchemyOrderDraftRepository(self.session)
        self.order_repository = SQLAlchemyOrderRepository(self.session)
        self.webhook_event_repository = SQLAlchemyWebhookEventRepository(self.session)
        if not self._readonly:
            await self.session.begin()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            await super().__aexit__(exc_type, exc, tb)
        finally:
            # close() 会回滚只读查询自动开启的事务
            if self.session is not None:
                await self.session.close()
                self.session = None

    async def commit(self) -> None:
        if self.session is not None and self.session.in_transaction():
            await self.session.commit()
        self._committed = True

    async def rollback(self) -> None:
        if self.session is not None and self.session.in_transaction():
            await self.session.rollback()
        self._committed = False


def make_uow_factory(
    session_factory: Callable[[], AsyncSession] = AsyncSessionLocal,
) -> Callable[..., SQLAlchemyUnitOfWork]:
    """绑定会话工厂，返回 uow_factory(readonly=False) 供应用服务使用"""

    def factory(*, readonly: bool = False) -> SQLAlchemyUnitOfWork:
        return SQLAlchemyUnitOfWork(session_factory, readonly=readonly)

    return factory
