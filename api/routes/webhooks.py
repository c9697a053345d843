"""
Webhook routes - Mercado Pago 通知入口

响应约定：processed / duplicate / in_flight / ignored 返回 200；
处理失败返回 500，让 Mercado Pago 按其策略重投。
"""
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from application.services.webhook_service import WebhookService, parse_notification
from api.dependencies import get_webhook_service
from core.logging_config import get_logger
from core.response import error_response, success_response


router = APIRouter(prefix="/webhooks", tags=["Webhooks"])
logger = get_logger(__name__)


@router.post("/mercadopago", summary="Mercado Pago webhook")
async def mercadopago_webhook(
    request: Request,
    service: WebhookService = Depends(get_webhook_service),
):
    raw_body = await request.body()
    notification = parse_notification(
        raw_body,
        request.headers.get("content-type"),
        request.query_params,
        request_id=request.headers.get("x-request-id"),
    )
    service.verify_signature(
        notification,
        request.headers.get("x-signature"),
        request.headers.get("x-request-id"),
    )

    result = await service.ingest(notification)
    logger.info(
        "mp_webhook_handled",
        topic=notification.topic,
        resource_id=notification.resource_id,
        result=result.status,
    )
    if not result.acknowledged:
        return JSONResponse(
            status_code=500,
            content=error_response("Webhook processing failed", {"received": True, "status": result.status}),
        )
    return success_response({"received": True, "status": result.status})
