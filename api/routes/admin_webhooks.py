"""
Admin webhook audit routes（需要 role=admin 的 Bearer JWT）
"""
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query

from application.dtos.webhooks import WebhookListQuery
from application.services.webhook_admin_service import WebhookAdminService
from api.dependencies import get_webhook_admin_service, require_admin
from core.response import success_response


router = APIRouter(
    prefix="/admin/webhooks",
    tags=["Admin Webhooks"],
    dependencies=[Depends(require_admin)],
)


@router.get("", summary="Webhook 事件列表")
async def list_webhook_events(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[Literal["received", "processed", "failed"]] = Query(None),
    topic: Optional[str] = Query(None, max_length=100),
    q: Optional[str] = Query(None, max_length=200),
    date_from: Optional[str] = Query(None, alias="from"),
    date_to: Optional[str] = Query(None, alias="to"),
    service: WebhookAdminService = Depends(get_webhook_admin_service),
):
    query = WebhookListQuery(
        page=page,
        limit=limit,
        status=status,
        topic=topic,
        q=q,
        date_from=date_from,
        date_to=date_to,
    )
    return success_response(await service.list_events(query))


@router.get("/insights", summary="Webhook 统计")
async def webhook_insights(
    range: Literal["24h", "7d"] = Query("7d"),
    service: WebhookAdminService = Depends(get_webhook_admin_service),
):
    return success_response(await service.insights(range))


@router.get("/{id}", summary="Webhook 事件详情")
async def get_webhook_event(
    id: str,
    service: WebhookAdminService = Depends(get_webhook_admin_service),
):
    return success_response({"item": await service.get_event(id)})


@router.post("/{id}/retry", summary="重试失败的 Webhook 事件")
async def retry_webhook_event(
    id: str,
    service: WebhookAdminService = Depends(get_webhook_admin_service),
):
    result = await service.retry_event(id)
    return success_response(result, message=result.message)
