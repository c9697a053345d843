"""
Payment DTOs (Pydantic v2) used at application boundaries.

Mercado Pago resources are parsed leniently: unknown fields are kept so that
callers can log or store them, and numeric identifiers are normalised to
strings because identifiers are opaque throughout the service.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _opaque_id(v: Any) -> Any:
    if v is None:
        return None
    if isinstance(v, (bool, float)):
        # 浮点数可能已丢失精度，标识符不做数值转换
        raise ValueError("identifier must be a string or integer")
    if isinstance(v, int):
        return str(v)
    return str(v).strip()


class MercadoPagoPayment(BaseModel):
    """GET /v1/payments/{id} 响应中本服务关心的字段"""

    id: str
    status: str = ""
    status_detail: Optional[str] = None
    external_reference: Optional[str] = None
    transaction_amount: Optional[Decimal] = None
    currency_id: Optional[str] = None
    payment_method_id: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    order: Optional[dict[str, Any]] = None

    model_config = ConfigDict(extra="allow")

    @field_validator("id", "external_reference", mode="before")
    @classmethod
    def _stringify_ids(cls, v: Any) -> Any:
        return _opaque_id(v)

    @field_validator("status", mode="before")
    @classmethod
    def _lower_status(cls, v: Any) -> str:
        return str(v or "").lower()

    @field_validator("metadata", mode="before")
    @classmethod
    def _metadata_or_empty(cls, v: Any) -> dict:
        return v if isinstance(v, dict) else {}

    @property
    def preference_id(self) -> Optional[str]:
        pref = self.metadata.get("preference_id")
        return str(pref) if pref else None


class MercadoPagoChargeback(BaseModel):
    """GET /v1/chargebacks/{id}：payments 为受影响的支付ID列表"""

    id: str
    payments: list[str] = Field(default_factory=list)
    coverage_applied: Optional[bool] = None
    documentation_status: Optional[str] = None

    model_config = ConfigDict(extra="allow")

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, v: Any) -> Any:
        return _opaque_id(v)

    @field_validator("payments", mode="before")
    @classmethod
    def _stringify_payments(cls, v: Any) -> list[str]:
        if not isinstance(v, list):
            return []
        out = []
        for item in v:
            # 部分响应为对象列表 [{"id": 123}, ...]
            if isinstance(item, dict):
                item = item.get("id")
            if item is not None and str(item).strip():
                out.append(_opaque_id(item))
        return out


class MercadoPagoClaim(BaseModel):
    id: str
    resource_id: Optional[str] = None
    status: Optional[str] = None
    type: Optional[str] = None
    stage: Optional[str] = None

    model_config = ConfigDict(extra="allow")

    @field_validator("id", "resource_id", mode="before")
    @classmethod
    def _stringify_ids(cls, v: Any) -> Any:
        return _opaque_id(v)


class PreferenceItem(BaseModel):
    id: str
    title: str
    quantity: int
    unit_price: Decimal
    currency_id: str = "MXN"


class PreferenceRequest(BaseModel):
    """Checkout Pro preference 创建请求"""

    external_reference: str
    items: list[PreferenceItem]
    payer_email: Optional[str] = None
    payer_name: Optional[str] = None
    shipping_cost: Decimal = Decimal("0")
    back_urls: dict[str, str] = Field(default_factory=dict)
    notification_url: Optional[str] = None


class PreferenceResult(BaseModel):
    id: str
    init_point: Optional[str] = None
    sandbox_init_point: Optional[str] = None

    model_config = ConfigDict(extra="ignore")

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, v: Any) -> Any:
        return _opaque_id(v)


class WebhookNotification(BaseModel):
    """从请求体/查询参数中解析出的通知"""

    topic: str
    action: str = ""
    resource_id: str = ""
    notification_id: Optional[str] = None
    request_id: Optional[str] = None
    raw_body: str = ""
    delivery_id: str = Field(default_factory=lambda: uuid4().hex)

    @property
    def event_id(self) -> str:
        """
        去重键：优先使用 Mercado Pago 分配的通知ID

        无通知ID时（旧版 IPN 等）同一资源的每次状态变更都携带相同的 topic/资源ID，
        因此按投递区分：x-request-id，缺失时为本次投递生成的随机ID。
        """
        if self.notification_id:
            return self.notification_id
        return f"{self.topic}:{self.resource_id}:{(self.request_id or self.delivery_id)[:64]}"


class PaymentOutcome(BaseModel):
    """应用一次支付结果后的状态"""

    status: str
    payment_id: Optional[str] = None
    draft_id: Optional[str] = None
    order_id: Optional[str] = None
    order_number: Optional[str] = None
    already_processed: bool = False
