"""
结账与订单相关 DTO

请求/响应字段使用驼峰别名，与店面前端的 JSON 约定保持一致。
"""
from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import EmailStr, Field, field_validator

from application.dtos.base import DTOBase


ShippingMethod = Literal["standard", "express", "overnight"]


class DraftItemInput(DTOBase):
    product_id: str = Field(..., min_length=1, description="商品ID（不透明字符串）")
    product_name: str = Field(default="", max_length=200)
    quantity: int = Field(..., ge=1, description="数量，至少为1")
    unit_price: Decimal = Field(..., ge=0)

    @field_validator("product_id", mode="before")
    @classmethod
    def _stringify_product_id(cls, v):
        return str(v).strip() if v is not None else v


class AddressInput(DTOBase):
    street: str = Field(..., min_length=1, max_length=200)
    city: str = Field(..., min_length=1, max_length=100)
    state: str = Field(..., min_length=1, max_length=100)
    zip: str = Field(..., min_length=1, max_length=20)
    country: str = "México"


class CreateDraftDTO(DTOBase):
    """创建结账草稿请求"""
    customer_name: str = Field(..., min_length=1, max_length=120)
    customer_email: EmailStr
    customer_phone: Optional[str] = Field(None, max_length=30)
    shipping_address: AddressInput
    shipping_method: ShippingMethod = "standard"
    items: list[DraftItemInput] = Field(..., min_length=1)
    notes: Optional[str] = Field(None, max_length=1000)


class DraftCreatedDTO(DTOBase):
    id: str
    init_point: Optional[str] = None
    preference_id: Optional[str] = None
    total_amount: Decimal


class DraftStatusDTO(DTOBase):
    """草稿状态：仅在已转换时携带订单信息"""
    status: str
    order_id: Optional[str] = None
    order_number: Optional[str] = None

    def to_payload(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class PaymentVerificationDTO(DTOBase):
    """客户从 Mercado Pago 返回后查询支付结果"""
    status: str
    order_id: Optional[str] = None
    order_number: Optional[str] = None
    detail: str
    can_retry: bool
    next_action: Literal["go_orders", "poll_or_wait", "retry_checkout", "wait"]
    detail_url: Optional[str] = None


class OrderItemDTO(DTOBase):
    product_id: str
    product_name: str
    quantity: int
    unit_price: Decimal
    total_price: Decimal


class OrderDetailDTO(DTOBase):
    """客户通过签名链接查看的订单详情"""
    id: str
    order_number: str
    status: str
    payment_status: str
    customer_name: str
    customer_email: str
    customer_phone: Optional[str] = None
    shipping_street: str
    shipping_city: str
    shipping_state: str
    shipping_zip: str
    shipping_country: str
    shipping_method: str
    items: list[OrderItemDTO]
    subtotal: Decimal
    shipping_cost: Decimal
    tax: Decimal
    total_amount: Decimal
    currency: str
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
