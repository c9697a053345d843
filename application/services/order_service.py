"""
订单查询服务 - 通过签名链接访问订单详情
"""
from __future__ import annotations

from typing import Callable, Optional

from application.dtos.checkout import OrderDetailDTO, OrderItemDTO
from application.services.order_token_service import OrderTokenService
from core.exceptions import InvalidOrderTokenException, UnauthorizedException
from core.logging_config import get_logger
from domain.common.exceptions import OrderNotFoundException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import Order


logger = get_logger(__name__)


def _to_detail(order: Order) -> OrderDetailDTO:
    address = order.shipping_address
    return OrderDetailDTO(
        id=order.id,
        order_number=order.order_number,
        status=order.status,
        payment_status=order.payment_status.value,
        customer_name=order.customer_name,
        customer_email=order.customer_email,
        customer_phone=order.customer_phone,
        shipping_street=address.street,
        shipping_city=address.city,
        shipping_state=address.state,
        shipping_zip=address.zip,
        shipping_country=address.country,
        shipping_method=order.shipping_method,
        items=[
            OrderItemDTO(
                product_id=item.product_id,
                product_name=item.product_name,
                quantity=item.quantity,
                unit_price=item.unit_price,
                total_price=item.total_price,
            )
            for item in order.items
        ],
        subtotal=order.subtotal,
        shipping_cost=order.shipping_cost,
        tax=order.tax,
        total_amount=order.total_amount,
        currency=order.currency,
        notes=order.notes,
        created_at=order.created_at,
    )


class OrderService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        token_service: OrderTokenService,
    ) -> None:
        self._uow_factory = uow_factory
        self._token_service = token_service

    async def get_detail_with_token(
        self,
        order_id: str,
        token: Optional[str],
        expires: Optional[str],
    ) -> OrderDetailDTO:
        """
        - 缺少 token: 401
        - token 与订单不匹配或已过期: 403
        - 订单不存在: 404
        """
        if not token:
            raise UnauthorizedException("Token requerido para acceder a los detalles del pedido")
        if not self._token_service.verify(order_id, token, expires):
            logger.info("order_token_rejected", order_id=order_id)
            raise InvalidOrderTokenException()

        async with self._uow_factory(readonly=True) as uow:
            order = await uow.order_repository.get_by_id(order_id)
        if order is None:
            raise OrderNotFoundException(order_id)
        return _to_detail(order)
