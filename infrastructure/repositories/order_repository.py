"""
草稿与订单仓储实现 - 使用SQLAlchemy实现数据访问
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from domain.order.entity import (
    DraftStatus,
    LineItem,
    Order,
    OrderDraft,
    OrderPaymentStatus,
    ShippingAddress,
)
from domain.order.repository import OrderDraftRepository, OrderRepository
from infrastructure.models.order import OrderDraftModel, OrderModel
from core.logging_config import get_logger


logger = get_logger(__name__)


def _address_from(model) -> ShippingAddress:
    return ShippingAddress(
        street=model.shipping_street,
        city=model.shipping_city,
        state=model.shipping_state,
        zip=model.shipping_zip,
        country=model.shipping_country,
    )


def _address_columns(address: ShippingAddress) -> dict:
    return {
        "shipping_street": address.street,
        "shipping_city": address.city,
        "shipping_state": address.state,
        "shipping_zip": address.zip,
        "shipping_country": address.country,
    }


def _items_from(raw) -> list[LineItem]:
    return [LineItem.from_dict(item) for item in (raw or [])]


class SQLAlchemyOrderDraftRepository(OrderDraftRepository):
    """草稿仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: OrderDraftModel) -> OrderDraft:
        return OrderDraft(
            id=model.id,
            status=DraftStatus(model.status),
            customer_name=model.customer_name,
            customer_email=model.customer_email,
            customer_phone=model.customer_phone,
            shipping_address=_address_from(model),
            shipping_method=model.shipping_method,
            items=_items_from(model.items),
            subtotal=Decimal(str(model.subtotal)),
            shipping_cost=Decimal(str(model.shipping_cost)),
            tax=Decimal(str(model.tax)),
            total_amount=Decimal(str(model.total_amount)),
            currency=model.currency,
            notes=model.notes,
            preference_id=model.preference_id,
            converted_order_id=model.converted_order_id,
            order_number=model.order_number,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    async def create(self, draft: OrderDraft) -> OrderDraft:
        db_draft = OrderDraftModel(
            status=draft.status.value,
            customer_name=draft.customer_name,
            customer_email=draft.customer_email,
            customer_phone=draft.customer_phone,
            shipping_method=draft.shipping_method,
            items=[item.to_dict() for item in draft.items],
            subtotal=draft.subtotal,
            shipping_cost=draft.shipping_cost,
            tax=draft.tax,
            total_amount=draft.total_amount,
            currency=draft.currency,
            notes=draft.notes,
            preference_id=draft.preference_id,
            **_address_columns(draft.shipping_address),
        )
        if draft.id:
            db_draft.id = draft.id
        self.session.add(db_draft)
        await self.session.flush()
        await self.session.refresh(db_draft)
        return self._to_entity(db_draft)

    async def get_by_id(self, draft_id: str) -> Optional[OrderDraft]:
        result = await self.session.execute(
            select(OrderDraftModel).where(OrderDraftModel.id == draft_id)
        )
        db_draft = result.scalar_one_or_none()
        return self._to_entity(db_draft) if db_draft else None

    async def set_preference(self, draft_id: str, preference_id: str) -> None:
        await self.session.execute(
            update(OrderDraftModel)
            .where(OrderDraftModel.id == draft_id)
            .values(preference_id=preference_id, updated_at=datetime.now(timezone.utc))
        )

    async def mark_converted(self, draft_id: str, order_id: str, order_number: str) -> bool:
        # 条件更新：只有仍为 pending 的草稿才会被本次调用转换
        result = await self.session.execute(
            update(OrderDraftModel)
            .where(
                OrderDraftModel.id == draft_id,
                OrderDraftModel.status == DraftStatus.PENDING.value,
            )
            .values(
                status=DraftStatus.CONVERTED.value,
                converted_order_id=order_id,
                order_number=order_number,
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        converted = result.rowcount == 1
        if converted:
            logger.info("draft_marked_converted", draft_id=draft_id, order_id=order_id)
        return converted


class SQLAlchemyOrderRepository(OrderRepository):
    """订单仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: OrderModel) -> Order:
        return Order(
            id=model.id,
            order_number=model.order_number,
            draft_id=model.draft_id,
            status=model.status,
            payment_status=OrderPaymentStatus(model.payment_status),
            mp_payment_id=model.mp_payment_id,
            mp_preference_id=model.mp_preference_id,
            customer_name=model.customer_name,
            customer_email=model.customer_email,
            customer_phone=model.customer_phone,
            shipping_address=_address_from(model),
            shipping_method=model.shipping_method,
            items=_items_from(model.items),
            subtotal=Decimal(str(model.subtotal)),
            shipping_cost=Decimal(str(model.shipping_cost)),
            tax=Decimal(str(model.tax)),
            total_amount=Decimal(str(model.total_amount)),
            currency=model.currency,
            notes=model.notes,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    async def create(self, order: Order) -> Order:
        db_order = OrderModel(
            id=order.id,
            order_number=order.order_number,
            draft_id=order.draft_id,
            status=order.status,
            payment_status=order.payment_status.value,
            mp_payment_id=order.mp_payment_id,
            mp_preference_id=order.mp_preference_id,
            customer_name=order.customer_name,
            customer_email=order.customer_email,
            customer_phone=order.customer_phone,
            shipping_method=order.shipping_method,
            items=[item.to_dict() for item in order.items],
            subtotal=order.subtotal,
            shipping_cost=order.shipping_cost,
            tax=order.tax,
            total_amount=order.total_amount,
            currency=order.currency,
            notes=order.notes,
            **_address_columns(order.shipping_address),
        )
        self.session.add(db_order)
        await self.session.flush()
        await self.session.refresh(db_order)
        logger.info("order_created", order_id=db_order.id, order_number=db_order.order_number)
        return self._to_entity(db_order)

    async def get_by_id(self, order_id: str) -> Optional[Order]:
        result = await self.session.execute(
            select(OrderModel).where(OrderModel.id == order_id)
        )
        db_order = result.scalar_one_or_none()
        return self._to_entity(db_order) if db_order else None

    async def list_by_payment_ids(self, payment_ids: list[str]) -> list[Order]:
        if not payment_ids:
            return []
        result = await self.session.execute(
            select(OrderModel).where(OrderModel.mp_payment_id.in_(payment_ids))
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def update_payment_status(self, payment_ids: list[str], status: OrderPaymentStatus) -> int:
        if not payment_ids:
            return 0
        result = await self.session.execute(
            update(OrderModel)
            .where(OrderModel.mp_payment_id.in_(payment_ids))
            .values(payment_status=status.value, updated_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0
