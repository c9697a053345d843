"""
自定义异常映射与全局异常处理器
"""
import uuid

from fastapi import FastAPI, Request, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette import status as http_status

from .response import error_response
from shared.codes import BusinessCode
from shared.codes.payment_codes import PaymentCode
from core.logging_config import get_logger
from domain.common.exceptions import BusinessException


INTERNAL_ERROR_MESSAGE = "Error interno del servidor"


class UnauthorizedException(BusinessException):
    """未授权异常"""

    def __init__(self, message: str = "No autorizado. Token requerido."):
        super().__init__(
            code=BusinessCode.UNAUTHORIZED,
            message=message,
            error_type="Unauthorized",
        )


class ForbiddenException(BusinessException):
    """权限不足异常"""

    def __init__(self, message: str = "No autorizado. Se requieren permisos de administrador."):
        super().__init__(
            code=BusinessCode.FORBIDDEN,
            message=message,
            error_type="Forbidden",
        )


class InvalidOrderTokenException(BusinessException):
    """订单访问令牌无效或已过期"""

    def __init__(self):
        super().__init__(
            code=BusinessCode.TOKEN_INVALID,
            message="Token inválido o no autorizado para este pedido",
            error_type="InvalidOrderToken",
        )


_BUSINESS_CODE_TO_HTTP_STATUS = {
    BusinessCode.PARAM_ERROR: http_status.HTTP_400_BAD_REQUEST,
    BusinessCode.PARAM_MISSING: http_status.HTTP_400_BAD_REQUEST,
    BusinessCode.PARAM_VALIDATION_ERROR: http_status.HTTP_422_UNPROCESSABLE_ENTITY,

    BusinessCode.BUSINESS_ERROR: http_status.HTTP_400_BAD_REQUEST,
    BusinessCode.TOKEN_INVALID: http_status.HTTP_403_FORBIDDEN,
    BusinessCode.NOT_FOUND: http_status.HTTP_404_NOT_FOUND,
    BusinessCode.DRAFT_NOT_FOUND: http_status.HTTP_404_NOT_FOUND,
    BusinessCode.ORDER_NOT_FOUND: http_status.HTTP_404_NOT_FOUND,
    BusinessCode.WEBHOOK_EVENT_NOT_FOUND: http_status.HTTP_404_NOT_FOUND,
    BusinessCode.WEBHOOK_EVENT_NOT_RETRYABLE: http_status.HTTP_400_BAD_REQUEST,
    BusinessCode.WEBHOOK_PROCESSING_FAILED: http_status.HTTP_422_UNPROCESSABLE_ENTITY,

    BusinessCode.UNAUTHORIZED: http_status.HTTP_401_UNAUTHORIZED,
    BusinessCode.FORBIDDEN: http_status.HTTP_403_FORBIDDEN,

    BusinessCode.SYSTEM_ERROR: http_status.HTTP_500_INTERNAL_SERVER_ERROR,
    BusinessCode.DATABASE_ERROR: http_status.HTTP_500_INTERNAL_SERVER_ERROR,
    BusinessCode.NETWORK_ERROR: http_status.HTTP_502_BAD_GATEWAY,
    BusinessCode.SERVICE_UNAVAILABLE: http_status.HTTP_503_SERVICE_UNAVAILABLE,

    PaymentCode.PROVIDER_ERROR: http_status.HTTP_502_BAD_GATEWAY,
    PaymentCode.LOOKUP_FAILED: http_status.HTTP_502_BAD_GATEWAY,
    PaymentCode.PROVIDER_NOT_CONFIGURED: http_status.HTTP_503_SERVICE_UNAVAILABLE,
    PaymentCode.SIGNATURE_ERROR: http_status.HTTP_401_UNAUTHORIZED,
}


def business_code_to_http_status(code: int) -> int:
    """根据业务码映射HTTP状态码（默认400）。"""
    return _BUSINESS_CODE_TO_HTTP_STATUS.get(int(code), http_status.HTTP_400_BAD_REQUEST)


def _request_id(request: Request) -> str:
    return getattr(getattr(request, "state", object()), "request_id", None) or str(uuid.uuid4())


def register_exception_handlers(app: FastAPI):
    """
    注册全局异常处理器

    Args:
        app: FastAPI应用实例
    """

    logger = get_logger(__name__)

    @app.exception_handler(BusinessException)
    async def business_exception_handler(request: Request, exc: BusinessException):
        """处理业务异常"""
        status_code = business_code_to_http_status(exc.code)
        logger.info(
            "business_exception",
            request_id=_request_id(request),
            error_type=exc.error_type,
            code=int(exc.code),
            status_code=status_code,
            details=exc.details,
        )
        body = error_response(exc.message, exc.details if exc.expose_details else None)
        headers = {"WWW-Authenticate": "Bearer"} if status_code == http_status.HTTP_401_UNAUTHORIZED else None
        return JSONResponse(status_code=status_code, content=body, headers=headers)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """处理参数验证异常"""
        errors = exc.errors()
        first_error = errors[0] if errors else {}
        field = ".".join(str(loc) for loc in first_error.get("loc", [])[1:])
        logger.info(
            "request_validation_failed",
            request_id=_request_id(request),
            field=field,
            reason=first_error.get("msg"),
        )
        return JSONResponse(
            status_code=http_status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=error_response("Solicitud inválida", {"field": field} if field else None),
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        """处理HTTP异常"""
        message = str(exc.detail) if exc.status_code < 500 else INTERNAL_ERROR_MESSAGE
        return JSONResponse(
            status_code=exc.status_code,
            content=error_response(message),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """处理所有未捕获的异常：对外只返回通用消息，细节仅写入服务端日志"""
        logger.error(
            "unhandled_exception",
            request_id=_request_id(request),
            error=str(exc),
            error_type=type(exc).__name__,
            exc_info=True,
        )
        return JSONResponse(
            status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=error_response(INTERNAL_ERROR_MESSAGE),
        )
