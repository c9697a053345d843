"""
API依赖项 - 服务装配与管理端认证

Mercado Pago 客户端与订单令牌服务在应用启动时创建并挂在 app.state 上，
这里只负责按请求组装应用服务。
"""
from typing import Callable, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from application.ports.payment_gateway import PaymentGateway
from application.services.checkout_service import CheckoutService
from application.services.order_fulfillment_service import OrderFulfillmentService
from application.services.order_service import OrderService
from application.services.order_token_service import OrderTokenService
from application.services.webhook_admin_service import WebhookAdminService
from application.services.webhook_service import WebhookService
from core.config import settings
from core.exceptions import UnauthorizedException
from core.security import decode_admin_token
from core.settings import payment_settings
from domain.common.unit_of_work import AbstractUnitOfWork
from infrastructure.unit_of_work import make_uow_factory

# HTTP Bearer for admin API calls
http_bearer = HTTPBearer(
    scheme_name="Bearer",
    description="Admin JWT (HS256, role=admin)",
    auto_error=False,
)


def get_uow_factory() -> Callable[..., AbstractUnitOfWork]:
    return make_uow_factory()


def get_payment_gateway(request: Request) -> PaymentGateway:
    return request.app.state.payment_gateway


def get_order_token_service(request: Request) -> OrderTokenService:
    return request.app.state.order_token_service


def get_fulfillment_service(
    uow_factory: Callable[..., AbstractUnitOfWork] = Depends(get_uow_factory),
) -> OrderFulfillmentService:
    return OrderFulfillmentService(uow_factory)


def get_checkout_service(
    uow_factory: Callable[..., AbstractUnitOfWork] = Depends(get_uow_factory),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    fulfillment: OrderFulfillmentService = Depends(get_fulfillment_service),
    token_service: OrderTokenService = Depends(get_order_token_service),
) -> CheckoutService:
    return CheckoutService(
        uow_factory,
        gateway,
        fulfillment,
        token_service,
        app_base_url=settings.app_base_url,
        notification_url=payment_settings.mercadopago.notification_url,
        currency=payment_settings.mercadopago.currency,
    )


def get_order_service(
    uow_factory: Callable[..., AbstractUnitOfWork] = Depends(get_uow_factory),
    token_service: OrderTokenService = Depends(get_order_token_service),
) -> OrderService:
    return OrderService(uow_factory, token_service)


def get_webhook_service(
    uow_factory: Callable[..., AbstractUnitOfWork] = Depends(get_uow_factory),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    fulfillment: OrderFulfillmentService = Depends(get_fulfillment_service),
) -> WebhookService:
    return WebhookService(
        uow_factory,
        gateway,
        fulfillment,
        processing_lease_seconds=settings.webhook.processing_lease_seconds,
        max_payload_chars=settings.webhook.max_payload_chars,
    )


def get_webhook_admin_service(
    uow_factory: Callable[..., AbstractUnitOfWork] = Depends(get_uow_factory),
    webhook_service: WebhookService = Depends(get_webhook_service),
) -> WebhookAdminService:
    return WebhookAdminService(uow_factory, webhook_service)


async def require_admin(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer),
) -> dict:
    """校验管理端 Bearer 令牌：缺失/无效 401，角色不符 403"""
    if credentials is None or not credentials.credentials:
        raise UnauthorizedException()
    return decode_admin_token(credentials.credentials)
