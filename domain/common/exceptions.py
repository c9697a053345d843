"""领域层业务异常定义，供领域与基础设施使用。

核心（core）层仅负责全局映射与异常处理，尽量避免领域层反向依赖核心层。
"""
from __future__ import annotations

from typing import Optional
from shared.codes import BusinessCode
from shared.codes.payment_codes import PaymentCode


class BusinessException(Exception):
    """业务异常基类"""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
        expose_details: bool = False,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        # 是否允许将 details 返回给调用方（默认仅写日志）
        self.expose_details = expose_details
        super().__init__(self.message)


class DomainValidationException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="DomainValidationError",
            details=details,
            field=field,
        )


class OrderDraftNotFoundException(BusinessException):
    def __init__(self, draft_id: Optional[str] = None):
        details = {"draft_id": draft_id} if draft_id else None
        super().__init__(
            code=BusinessCode.DRAFT_NOT_FOUND,
            message="Borrador no encontrado",
            error_type="OrderDraftNotFound",
            details=details,
        )


class OrderNotFoundException(BusinessException):
    def __init__(self, order_id: Optional[str] = None):
        details = {"order_id": order_id} if order_id else None
        super().__init__(
            code=BusinessCode.ORDER_NOT_FOUND,
            message="Pedido no encontrado",
            error_type="OrderNotFound",
            details=details,
        )


class WebhookEventNotFoundException(BusinessException):
    def __init__(self, event_id: Optional[str] = None):
        details = {"id": event_id} if event_id else None
        super().__init__(
            code=BusinessCode.WEBHOOK_EVENT_NOT_FOUND,
            message="Webhook event not found",
            error_type="WebhookEventNotFound",
            details=details,
        )


class WebhookEventNotRetryableException(BusinessException):
    def __init__(self, status: str):
        super().__init__(
            code=BusinessCode.WEBHOOK_EVENT_NOT_RETRYABLE,
            message="Only failed events can be retried",
            error_type="WebhookEventNotRetryable",
            details={"status": status},
            expose_details=True,
        )


class WebhookProcessingFailedException(BusinessException):
    def __init__(self, error: str):
        super().__init__(
            code=BusinessCode.WEBHOOK_PROCESSING_FAILED,
            message=error,
            error_type="WebhookProcessingFailed",
        )


class WebhookSignatureInvalidException(BusinessException):
    def __init__(self, provider: str = "mercadopago"):
        super().__init__(
            code=PaymentCode.SIGNATURE_ERROR,
            message="Invalid signature",
            error_type="WebhookSignatureInvalid",
            details={"provider": provider},
        )


class PaymentProviderNotConfiguredException(BusinessException):
    def __init__(self, provider: str = "mercadopago"):
        super().__init__(
            code=PaymentCode.PROVIDER_NOT_CONFIGURED,
            message="Mercado Pago no está configurado",
            error_type="PaymentProviderNotConfigured",
            details={"provider": provider},
        )


class PaymentLookupFailedException(BusinessException):
    def __init__(self, payment_id: Optional[str] = None):
        super().__init__(
            code=PaymentCode.LOOKUP_FAILED,
            message="No se pudo verificar el pago con Mercado Pago",
            error_type="PaymentLookupFailed",
            details={"payment_id": payment_id} if payment_id else None,
        )
