"""
Checkout API routes - 草稿创建与状态轮询
"""
from fastapi import APIRouter, Depends

from application.dtos.checkout import CreateDraftDTO
from application.services.checkout_service import CheckoutService
from api.dependencies import get_checkout_service
from core.response import success_response


router = APIRouter(prefix="/checkout", tags=["Checkout"])


@router.post("/draft", summary="创建结账草稿")
async def create_draft(
    body: CreateDraftDTO,
    service: CheckoutService = Depends(get_checkout_service),
):
    created = await service.create_draft(body)
    return success_response(created)


@router.get("/draft/{draft_id}/status", summary="查询草稿状态")
async def get_draft_status(
    draft_id: str,
    service: CheckoutService = Depends(get_checkout_service),
):
    """converted 时返回 orderId / orderNumber，供支付成功页轮询"""
    status = await service.get_draft_status(draft_id)
    return success_response(status.to_payload())
