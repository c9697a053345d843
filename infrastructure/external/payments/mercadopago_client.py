"""
Mercado Pago adapter over the REST API (httpx).

Endpoints used:
- GET  /v1/payments/{id}
- GET  /v1/chargebacks/{id}
- GET  /v1/claims/{id}            (claims integration webhooks)
- POST /checkout/preferences      (Checkout Pro)

Webhook x-signature format: ``ts=<unix>,v1=<hex>``; the signed manifest is
``id:<data.id lowercase>;request-id:<x-request-id>;ts:<ts>;`` (HMAC-SHA256).
"""
from __future__ import annotations

import hashlib
import hmac
from typing import Any, Optional
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from application.dtos.payments import (
    MercadoPagoChargeback,
    MercadoPagoClaim,
    MercadoPagoPayment,
    PreferenceRequest,
    PreferenceResult,
)
from core.logging_config import get_logger
from core.settings import payment_settings
from infrastructure.external.payments.base import BasePaymentClient


logger = get_logger(__name__)


def parse_signature_header(x_signature: str) -> tuple[str, str]:
    """解析 "ts=..,v1=.." 返回 (ts, v1)，缺失项为空串"""
    ts, v1 = "", ""
    for part in x_signature.split(","):
        key, sep, val = part.partition("=")
        if not sep:
            continue
        key = key.strip()
        if key == "ts":
            ts = val.strip()
        elif key == "v1":
            v1 = val.strip()
    return ts, v1


def compute_signature(secret: str, data_id: str, request_id: Optional[str], ts: str) -> str:
    manifest = f"id:{data_id.lower()};request-id:{request_id or ''};ts:{ts};"
    return hmac.new(secret.encode("utf-8"), manifest.encode("utf-8"), hashlib.sha256).hexdigest()


class MercadoPagoClient(BasePaymentClient):
    provider = "mercadopago"
    failure_event = "mp_lookup_failed"

    def __init__(
        self,
        *,
        access_token: Optional[str] = None,
        webhook_secret: Optional[str] = None,
        api_base: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeouts: Optional[dict[str, float]] = None,
        retry: Optional[dict[str, Any]] = None,
    ) -> None:
        mp = payment_settings.mercadopago
        super().__init__(
            base_url=api_base or mp.api_base,
            timeouts=timeouts or payment_settings.timeouts.model_dump(),
            retry=retry or {"max": payment_settings.retry.max, "base": payment_settings.retry.base_backoff},
            transport=transport,
        )
        self._access_token = (access_token if access_token is not None else mp.access_token) or ""
        self._webhook_secret = (webhook_secret if webhook_secret is not None else mp.webhook_secret) or ""
        if not self._access_token:
            logger.warning("mp_not_configured", detail="MERCADOPAGO__ACCESS_TOKEN not set")

    @property
    def is_configured(self) -> bool:
        return bool(self._access_token)

    @property
    def has_webhook_secret(self) -> bool:
        return bool(self._webhook_secret)

    def _default_headers(self) -> dict[str, str]:
        headers = super()._default_headers()
        if self._access_token:
            headers["Authorization"] = f"Bearer {self._access_token}"
        return headers

    async def _get_resource(self, kind: str, resource_id: str) -> Optional[dict[str, Any]]:
        rid = str(resource_id or "").strip()
        if not rid:
            return None
        if not self.is_configured:
            self._log_failure(f"{kind}.get", error="not_configured", resource_id=rid)
            return None
        return await self._request_json(
            "GET",
            f"/v1/{kind}/{quote(rid, safe='')}",
            operation=f"{kind}.get",
            resource_id=rid,
        )

    def _parse(self, model, data: Optional[dict[str, Any]], kind: str):
        if data is None:
            return None
        try:
            return model.model_validate(data)
        except ValidationError as e:
            self._log_failure(f"{kind}.parse", error=str(e.errors()[0].get("msg")) if e.errors() else "invalid")
            return None

    async def get_payment(self, payment_id: str) -> Optional[MercadoPagoPayment]:
        data = await self._get_resource("payments", payment_id)
        return self._parse(MercadoPagoPayment, data, "payments")

    async def get_chargeback(self, chargeback_id: str) -> Optional[MercadoPagoChargeback]:
        data = await self._get_resource("chargebacks", chargeback_id)
        return self._parse(MercadoPagoChargeback, data, "chargebacks")

    async def get_claim(self, claim_id: str) -> Optional[MercadoPagoClaim]:
        data = await self._get_resource("claims", claim_id)
        return self._parse(MercadoPagoClaim, data, "claims")

    async def create_preference(self, req: PreferenceRequest) -> Optional[PreferenceResult]:
        if not self.is_configured:
            return None
        body: dict[str, Any] = {
            "items": [
                {
                    "id": item.id,
                    "title": item.title,
                    "quantity": item.quantity,
                    "unit_price": float(item.unit_price),
                    "currency_id": item.currency_id,
                }
                for item in req.items
            ],
            "external_reference": req.external_reference,
            "metadata": {"draft_id": req.external_reference},
        }
        if req.payer_email:
            body["payer"] = {"email": req.payer_email, "name": req.payer_name or ""}
        if req.shipping_cost > 0:
            body["shipments"] = {"cost": float(req.shipping_cost), "mode": "not_specified"}
        if req.back_urls:
            body["back_urls"] = req.back_urls
            body["auto_return"] = "approved"
        notification_url = req.notification_url or payment_settings.mercadopago.notification_url
        if notification_url:
            body["notification_url"] = notification_url

        data = await self._request_json(
            "POST",
            "/checkout/preferences",
            operation="preferences.create",
            json=body,
            headers={"X-Idempotency-Key": f"draft-{req.external_reference}"},
            external_reference=req.external_reference,
        )
        result = self._parse(PreferenceResult, data, "preferences")
        if result is not None:
            self._log("mp_preference_created", preference_id=result.id, external_reference=req.external_reference)
        return result

    def verify_signature(self, x_signature: Optional[str], x_request_id: Optional[str], data_id: str) -> bool:
        if not x_signature or not self._webhook_secret or not data_id:
            return False
        ts, v1 = parse_signature_header(x_signature)
        if not ts or not v1:
            return False
        expected = compute_signature(self._webhook_secret, data_id, x_request_id, ts)
        return hmac.compare_digest(expected.encode("ascii"), v1.lower().encode("ascii", errors="replace"))
