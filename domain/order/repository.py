"""
订单仓储接口 - 定义草稿与订单数据访问的抽象接口
"""
from abc import ABC, abstractmethod
from typing import Optional

from .entity import Order, OrderDraft, OrderPaymentStatus


class OrderDraftRepository(ABC):
    """草稿仓储抽象接口"""

    @abstractmethod
    async def create(self, draft: OrderDraft) -> OrderDraft:
        """创建草稿"""
        pass

    @abstractmethod
    async def get_by_id(self, draft_id: str) -> Optional[OrderDraft]:
        """根据ID获取草稿"""
        pass

    @abstractmethod
    async def set_preference(self, draft_id: str, preference_id: str) -> None:
        """记录 Checkout Pro preference ID"""
        pass

    @abstractmethod
    async def mark_converted(self, draft_id: str, order_id: str, order_number: str) -> bool:
        """原子地将 pending 草稿标记为 converted；仅当本次调用完成转换时返回 True"""
        pass


class OrderRepository(ABC):
    """订单仓储抽象接口"""

    @abstractmethod
    async def create(self, order: Order) -> Order:
        """创建订单"""
        pass

    @abstractmethod
    async def get_by_id(self, order_id: str) -> Optional[Order]:
        """根据ID获取订单"""
        pass

    @abstractmethod
    async def list_by_payment_ids(self, payment_ids: list[str]) -> list[Order]:
        """根据 Mercado Pago 支付ID获取订单"""
        pass

    @abstractmethod
    async def update_payment_status(
        self, payment_ids: list[str], status: OrderPaymentStatus
    ) -> int:
        """批量更新订单支付状态，返回受影响行数"""
        pass
