"""
订单领域实体 - 结账草稿与正式订单
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional


class DraftStatus(str, Enum):
    """草稿状态枚举"""
    PENDING = "pending"        # 等待支付
    CONVERTED = "converted"    # 已转换为订单
    EXPIRED = "expired"        # 已过期


class OrderPaymentStatus(str, Enum):
    PAID = "paid"
    REFUNDED = "refunded"
    CHARGED_BACK = "charged_back"


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """确保时间为 UTC 时区"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass
class LineItem:
    product_id: str
    product_name: str
    quantity: int
    unit_price: Decimal

    @property
    def total_price(self) -> Decimal:
        return self.unit_price * self.quantity

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price": str(self.unit_price),
            "total_price": str(self.total_price),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "LineItem":
        return cls(
            product_id=str(data.get("product_id", "")),
            product_name=str(data.get("product_name") or ""),
            quantity=int(data.get("quantity") or 1),
            unit_price=Decimal(str(data.get("unit_price") or "0")),
        )


@dataclass
class ShippingAddress:
    street: str
    city: str
    state: str
    zip: str
    country: str = "México"


@dataclass
class OrderDraft:
    """
    结账草稿 - 在支付确认前创建，支付成功后转换为正式订单

    业务规则：
    1. 只有 pending 状态的草稿可以转换
    2. 转换只能发生一次（由存储层条件更新保证）
    """

    id: Optional[str]
    status: DraftStatus
    customer_name: str
    customer_email: str
    shipping_address: ShippingAddress
    items: list[LineItem]
    subtotal: Decimal
    shipping_cost: Decimal
    tax: Decimal
    total_amount: Decimal
    shipping_method: str = "standard"
    currency: str = "MXN"
    customer_phone: Optional[str] = None
    notes: Optional[str] = None
    preference_id: Optional[str] = None
    converted_order_id: Optional[str] = None
    order_number: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)

    @property
    def is_pending(self) -> bool:
        return self.status == DraftStatus.PENDING

    @property
    def is_converted(self) -> bool:
        return (
            self.status == DraftStatus.CONVERTED
            and bool(self.converted_order_id)
            and bool(self.order_number)
        )


@dataclass
class Order:
    """正式订单 - 由已支付的草稿生成"""

    id: str
    order_number: str
    draft_id: str
    status: str
    payment_status: OrderPaymentStatus
    mp_payment_id: str
    customer_name: str
    customer_email: str
    shipping_address: ShippingAddress
    items: list[LineItem]
    subtotal: Decimal
    shipping_cost: Decimal
    tax: Decimal
    total_amount: Decimal
    shipping_method: str = "standard"
    currency: str = "MXN"
    customer_phone: Optional[str] = None
    notes: Optional[str] = None
    mp_preference_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    metadata: dict = field(default_factory=dict)

    def __post_init__(self):
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)

    @classmethod
    def from_draft(
        cls,
        draft: OrderDraft,
        *,
        order_id: str,
        order_number: str,
        mp_payment_id: str,
        mp_preference_id: Optional[str] = None,
    ) -> "Order":
        return cls(
            id=order_id,
            order_number=order_number,
            draft_id=draft.id or "",
            status="processing",
            payment_status=OrderPaymentStatus.PAID,
            mp_payment_id=mp_payment_id,
            mp_preference_id=mp_preference_id or draft.preference_id,
            customer_name=draft.customer_name,
            customer_email=draft.customer_email,
            customer_phone=draft.customer_phone,
            shipping_address=draft.shipping_address,
            shipping_method=draft.shipping_method,
            items=list(draft.items),
            subtotal=draft.subtotal,
            shipping_cost=draft.shipping_cost,
            tax=draft.tax,
            total_amount=draft.total_amount,
            currency=draft.currency,
            notes=draft.notes,
        )
