"""
订单履约服务 - 将 Mercado Pago 的支付/拒付结果应用到草稿与订单

所有调用方都应先从 Mercado Pago 查询到"真实"状态，再调用本服务；
回调请求体本身不可信。
"""
from __future__ import annotations

import random
import uuid
from datetime import datetime, timezone
from typing import Callable, Optional

from application.dtos.payments import MercadoPagoChargeback, MercadoPagoPayment, PaymentOutcome
from core.logging_config import get_logger
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import Order, OrderDraft, OrderPaymentStatus
from shared.codes.payment_codes import is_approved, is_reversed, mp_status_to_checkout_status


logger = get_logger(__name__)

ORDER_NUMBER_PREFIX = "MIST"


def generate_order_number(now: Optional[datetime] = None) -> str:
    """MIST-YYYYMMDD-NNNN（4 位随机数）"""
    now = now or datetime.now(timezone.utc)
    return f"{ORDER_NUMBER_PREFIX}-{now.strftime('%Y%m%d')}-{random.randint(1000, 9999)}"


class OrderFulfillmentService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        *,
        order_number_factory: Callable[[], str] = generate_order_number,
    ) -> None:
        self._uow_factory = uow_factory
        self._order_number_factory = order_number_factory

    async def apply_payment(
        self,
        payment: MercadoPagoPayment,
        *,
        uow: Optional[AbstractUnitOfWork] = None,
    ) -> PaymentOutcome:
        """
        应用支付结果

        - approved 且草稿为 pending：条件转换为订单（至多一次）
        - refunded / charged_back：更新对应订单的支付状态
        - 草稿已转换：返回 already_processed=True
        """
        if uow is None:
            async with self._uow_factory() as uow_local:
                return await self._apply_payment(payment, uow_local)
        return await self._apply_payment(payment, uow)

    async def _apply_payment(self, payment: MercadoPagoPayment, uow: AbstractUnitOfWork) -> PaymentOutcome:
        payment_id = payment.id
        draft_id = (payment.external_reference or "").strip()
        status = mp_status_to_checkout_status(payment.status)

        if not payment_id or not draft_id:
            logger.warning("payment_missing_reference", payment_id=payment_id, mp_status=payment.status)
            return PaymentOutcome(status="unknown", payment_id=payment_id or None)

        if is_reversed(payment.status):
            new_status = (
                OrderPaymentStatus.CHARGED_BACK
                if payment.status == "charged_back"
                else OrderPaymentStatus.REFUNDED
            )
            updated = await uow.order_repository.update_payment_status([payment_id], new_status)
            logger.info(
                "order_payment_reversed",
                payment_id=payment_id,
                payment_status=new_status.value,
                updated=updated,
            )

        draft = await uow.order_draft_repository.get_by_id(draft_id)
        if draft is None:
            logger.warning("payment_draft_not_found", payment_id=payment_id, draft_id=draft_id)
            return PaymentOutcome(status=status, payment_id=payment_id, draft_id=draft_id)

        if is_approved(payment.status) and draft.is_pending:
            return await self._convert_draft(draft, payment, uow, status)

        return PaymentOutcome(
            status=status,
            payment_id=payment_id,
            draft_id=draft_id,
            order_id=draft.converted_order_id,
            order_number=draft.order_number,
            already_processed=draft.is_converted and is_approved(payment.status),
        )

    async def _convert_draft(
        self,
        draft: OrderDraft,
        payment: MercadoPagoPayment,
        uow: AbstractUnitOfWork,
        status: str,
    ) -> PaymentOutcome:
        order_id = str(uuid.uuid4())
        order_number = self._order_number_factory()

        converted = await uow.order_draft_repository.mark_converted(draft.id, order_id, order_number)
        if not converted:
            # 并发请求已完成转换，读取其结果
            current = await uow.order_draft_repository.get_by_id(draft.id)
            logger.info("draft_already_converted", draft_id=draft.id, payment_id=payment.id)
            return PaymentOutcome(
                status=status,
                payment_id=payment.id,
                draft_id=draft.id,
                order_id=current.converted_order_id if current else None,
                order_number=current.order_number if current else None,
                already_processed=True,
            )

        order = Order.from_draft(
            draft,
            order_id=order_id,
            order_number=order_number,
            mp_payment_id=payment.id,
            mp_preference_id=payment.preference_id,
        )
        await uow.order_repository.create(order)
        logger.info(
            "order_created_from_draft",
            draft_id=draft.id,
            order_id=order_id,
            order_number=order_number,
            payment_id=payment.id,
        )
        return PaymentOutcome(
            status=status,
            payment_id=payment.id,
            draft_id=draft.id,
            order_id=order_id,
            order_number=order_number,
        )

    async def apply_chargeback(
        self,
        chargeback: MercadoPagoChargeback,
        *,
        uow: Optional[AbstractUnitOfWork] = None,
    ) -> int:
        """将拒付涉及的支付对应订单标记为 charged_back，返回受影响订单数"""
        if not chargeback.payments:
            logger.info("chargeback_without_payments", chargeback_id=chargeback.id)
            return 0
        if uow is None:
            async with self._uow_factory() as uow_local:
                return await self._apply_chargeback(chargeback, uow_local)
        return await self._apply_chargeback(chargeback, uow)

    async def _apply_chargeback(self, chargeback: MercadoPagoChargeback, uow: AbstractUnitOfWork) -> int:
        updated = await uow.order_repository.update_payment_status(
            chargeback.payments, OrderPaymentStatus.CHARGED_BACK
        )
        orders = await uow.order_repository.list_by_payment_ids(chargeback.payments)
        logger.warning(
            "orders_flagged_charged_back",
            chargeback_id=chargeback.id,
            payment_ids=chargeback.payments,
            order_numbers=[o.order_number for o in orders],
            updated=updated,
        )
        return updated
