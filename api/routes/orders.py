"""
Orders API routes - 通过签名链接查看订单详情
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from application.services.order_service import OrderService
from api.dependencies import get_order_service
from core.response import success_response


router = APIRouter(prefix="/orders", tags=["Orders"])


@router.get("/details/{order_id}", summary="订单详情（令牌访问）")
async def get_order_details(
    order_id: str,
    token: Optional[str] = Query(None),
    expires: Optional[str] = Query(None),
    service: OrderService = Depends(get_order_service),
):
    detail = await service.get_detail_with_token(order_id, token, expires)
    return success_response(detail)
