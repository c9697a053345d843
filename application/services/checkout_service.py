"""
结账服务 - 创建草稿、查询草稿状态、客户返回后的支付确认
"""
from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Optional

from application.dtos.checkout import (
    CreateDraftDTO,
    DraftCreatedDTO,
    DraftStatusDTO,
    PaymentVerificationDTO,
)
from application.dtos.payments import PreferenceItem, PreferenceRequest
from application.ports.payment_gateway import PaymentGateway
from application.services.order_fulfillment_service import OrderFulfillmentService
from application.services.order_token_service import OrderTokenService
from core.logging_config import get_logger
from domain.common.exceptions import (
    DomainValidationException,
    OrderDraftNotFoundException,
    PaymentLookupFailedException,
    PaymentProviderNotConfiguredException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import DraftStatus, LineItem, OrderDraft, ShippingAddress
from shared.codes.payment_codes import RETRYABLE_CHECKOUT_STATUSES


logger = get_logger(__name__)

SHIPPING_COSTS = {
    "standard": Decimal("150"),
    "express": Decimal("250"),
    "overnight": Decimal("500"),
}
TAX_RATE = Decimal("0.16")
CENTS = Decimal("0.01")


def _money(value: Decimal) -> Decimal:
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def compute_totals(items: list[LineItem], shipping_method: str) -> dict[str, Decimal]:
    """小计、运费、税（小计的 16%）与总额"""
    subtotal = sum((item.total_price for item in items), Decimal("0"))
    shipping_cost = SHIPPING_COSTS.get(shipping_method, SHIPPING_COSTS["standard"])
    tax = subtotal * TAX_RATE
    return {
        "subtotal": _money(subtotal),
        "shipping_cost": _money(shipping_cost),
        "tax": _money(tax),
        "total_amount": _money(subtotal + shipping_cost + tax),
    }


class CheckoutService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        gateway: PaymentGateway,
        fulfillment: OrderFulfillmentService,
        token_service: OrderTokenService,
        *,
        app_base_url: str = "http://localhost:3000",
        notification_url: Optional[str] = None,
        currency: str = "MXN",
    ) -> None:
        self._uow_factory = uow_factory
        self._gateway = gateway
        self._fulfillment = fulfillment
        self._token_service = token_service
        self._app_base_url = app_base_url.rstrip("/")
        self._notification_url = notification_url
        self._currency = currency

    async def create_draft(self, req: CreateDraftDTO) -> DraftCreatedDTO:
        items = [
            LineItem(
                product_id=item.product_id,
                product_name=item.product_name,
                quantity=item.quantity,
                unit_price=item.unit_price,
            )
            for item in req.items
        ]
        if not items:
            raise DomainValidationException("Los artículos del pedido son obligatorios", field="items")

        totals = compute_totals(items, req.shipping_method)
        draft = OrderDraft(
            id=None,
            status=DraftStatus.PENDING,
            customer_name=req.customer_name,
            customer_email=str(req.customer_email),
            customer_phone=req.customer_phone,
            shipping_address=ShippingAddress(
                street=req.shipping_address.street,
                city=req.shipping_address.city,
                state=req.shipping_address.state,
                zip=req.shipping_address.zip,
                country=req.shipping_address.country,
            ),
            shipping_method=req.shipping_method,
            items=items,
            currency=self._currency,
            notes=req.notes,
            **totals,
        )

        async with self._uow_factory() as uow:
            draft = await uow.order_draft_repository.create(draft)
        logger.info("checkout_draft_created", draft_id=draft.id, total_amount=str(draft.total_amount))

        preference = None
        if self._gateway.is_configured:
            preference = await self._gateway.create_preference(self._build_preference(draft))
            if preference is not None:
                async with self._uow_factory() as uow:
                    await uow.order_draft_repository.set_preference(draft.id, preference.id)
            else:
                logger.warning("checkout_preference_unavailable", draft_id=draft.id)

        return DraftCreatedDTO(
            id=draft.id,
            init_point=preference.init_point if preference else None,
            preference_id=preference.id if preference else None,
            total_amount=draft.total_amount,
        )

    def _build_preference(self, draft: OrderDraft) -> PreferenceRequest:
        pref_items = [
            PreferenceItem(
                id=item.product_id,
                title=item.product_name or item.product_id,
                quantity=item.quantity,
                unit_price=item.unit_price,
                currency_id=draft.currency,
            )
            for item in draft.items
        ]
        if draft.tax > 0:
            pref_items.append(
                PreferenceItem(id="tax", title="IVA (16%)", quantity=1, unit_price=draft.tax, currency_id=draft.currency)
            )
        return PreferenceRequest(
            external_reference=draft.id,
            items=pref_items,
            payer_email=draft.customer_email,
            payer_name=draft.customer_name,
            shipping_cost=draft.shipping_cost,
            back_urls={
                "success": f"{self._app_base_url}/checkout/return?draft_id={draft.id}",
                "pending": f"{self._app_base_url}/checkout/return?draft_id={draft.id}",
                "failure": f"{self._app_base_url}/orders/payment/failure?draft_id={draft.id}",
            },
            notification_url=self._notification_url,
        )

    async def get_draft_status(self, draft_id: str) -> DraftStatusDTO:
        """converted 时返回 orderId/orderNumber，否则只返回状态"""
        async with self._uow_factory(readonly=True) as uow:
            draft = await uow.order_draft_repository.get_by_id(draft_id)
        if draft is None:
            raise OrderDraftNotFoundException(draft_id)
        if draft.is_converted:
            return DraftStatusDTO(
                status=DraftStatus.CONVERTED.value,
                order_id=draft.converted_order_id,
                order_number=draft.order_number,
            )
        return DraftStatusDTO(status=draft.status.value)

    async def verify_payment(self, payment_id: str) -> PaymentVerificationDTO:
        """客户从 Mercado Pago 返回：以 MP 查询结果为准应用支付"""
        if not self._gateway.is_configured:
            raise PaymentProviderNotConfiguredException()

        payment = await self._gateway.get_payment(payment_id)
        if payment is None:
            raise PaymentLookupFailedException(payment_id)

        outcome = await self._fulfillment.apply_payment(payment)
        status = outcome.status
        can_retry = status in RETRYABLE_CHECKOUT_STATUSES
        if status == "APPROVED":
            next_action, detail = "go_orders", "Pago aprobado. Tu pedido fue confirmado."
        elif status == "PENDING":
            next_action, detail = "poll_or_wait", "Pago pendiente de acreditar."
        else:
            next_action = "retry_checkout" if can_retry else "wait"
            detail = "El pago no se completó o fue rechazado."

        detail_url = None
        if outcome.order_id and outcome.order_number:
            detail_url = self._token_service.build_detail_url(outcome.order_id, outcome.order_number)

        return PaymentVerificationDTO(
            status=status,
            order_id=outcome.order_id,
            order_number=outcome.order_number,
            detail=detail,
            can_retry=can_retry,
            next_action=next_action,
            detail_url=detail_url,
        )
