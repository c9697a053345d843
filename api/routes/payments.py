"""
Payments API routes.

Customer return from Mercado Pago: the payment is looked up by id and applied
through the same fulfillment path as webhooks. Keep this thin: no HTTP
details of the provider here.
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from application.services.checkout_service import CheckoutService
from api.dependencies import get_checkout_service
from core.logging_config import get_logger
from core.response import success_response
from domain.common.exceptions import BusinessException
from shared.codes import BusinessCode


router = APIRouter(prefix="/payments", tags=["Payments"])
logger = get_logger(__name__)


@router.get("/mercadopago/verify", summary="客户返回后确认支付")
async def verify_mercadopago_payment(
    payment_id: Optional[str] = Query(None),
    collection_id: Optional[str] = Query(None),
    service: CheckoutService = Depends(get_checkout_service),
):
    effective_id = (payment_id or collection_id or "").strip()
    if not effective_id:
        raise BusinessException(
            code=BusinessCode.PARAM_MISSING,
            message="Faltan payment_id o collection_id",
            error_type="PaymentIdMissing",
        )
    result = await service.verify_payment(effective_id)
    logger.info("mp_payment_verified", payment_id=effective_id, status=result.status, order_id=result.order_id)
    return success_response(result)
