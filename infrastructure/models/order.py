"""
结账草稿与订单数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，不是领域模型
"""
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Index, JSON, Numeric, String, Text

from .base import Base


def _uuid() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderDraftModel(Base):
    """
    结账草稿

    status 只允许 pending -> converted 的单次条件迁移
    """
    __tablename__ = "order_drafts"

    id = Column(String(36), primary_key=True, default=_uuid)
    status = Column(String(20), nullable=False, default="pending", index=True, comment="pending/converted/expired")
    converted_order_id = Column(String(36), nullable=True, comment="转换后的订单ID")
    order_number = Column(String(32), nullable=True, comment="转换后的订单号")

    # 客户信息
    customer_name = Column(String(120), nullable=False)
    customer_email = Column(String(255), nullable=False)
    customer_phone = Column(String(30), nullable=True)

    # 收货地址
    shipping_street = Column(String(200), nullable=False)
    shipping_city = Column(String(100), nullable=False)
    shipping_state = Column(String(100), nullable=False)
    shipping_zip = Column(String(20), nullable=False)
    shipping_country = Column(String(100), nullable=False, default="México")
    shipping_method = Column(String(20), nullable=False, default="standard")

    # 商品快照 [{product_id, product_name, quantity, unit_price, total_price}]
    items = Column(JSON, nullable=False, default=list)

    # 金额
    subtotal = Column(Numeric(precision=15, scale=2), nullable=False)
    shipping_cost = Column(Numeric(precision=15, scale=2), nullable=False)
    tax = Column(Numeric(precision=15, scale=2), nullable=False)
    total_amount = Column(Numeric(precision=15, scale=2), nullable=False)
    currency = Column(String(3), nullable=False, default="MXN")

    notes = Column(Text, nullable=True)
    preference_id = Column(String(100), nullable=True, index=True, comment="Checkout Pro preference ID")

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    def __repr__(self):
        return f"<OrderDraftModel(id='{self.id}', status='{self.status}')>"


class OrderModel(Base):
    """正式订单"""
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=_uuid)
    order_number = Column(String(32), nullable=False, index=True, comment="MIST-YYYYMMDD-NNNN")
    draft_id = Column(String(36), nullable=False, unique=True, comment="来源草稿ID")
    status = Column(String(20), nullable=False, default="processing")
    payment_status = Column(String(20), nullable=False, default="paid", index=True, comment="paid/refunded/charged_back")
    mp_payment_id = Column(String(64), nullable=False, index=True)
    mp_preference_id = Column(String(100), nullable=True)

    customer_name = Column(String(120), nullable=False)
    customer_email = Column(String(255), nullable=False)
    customer_phone = Column(String(30), nullable=True)

    shipping_street = Column(String(200), nullable=False)
    shipping_city = Column(String(100), nullable=False)
    shipping_state = Column(String(100), nullable=False)
    shipping_zip = Column(String(20), nullable=False)
    shipping_country = Column(String(100), nullable=False, default="México")
    shipping_method = Column(String(20), nullable=False, default="standard")

    items = Column(JSON, nullable=False, default=list)

    subtotal = Column(Numeric(precision=15, scale=2), nullable=False)
    shipping_cost = Column(Numeric(precision=15, scale=2), nullable=False)
    tax = Column(Numeric(precision=15, scale=2), nullable=False)
    total_amount = Column(Numeric(precision=15, scale=2), nullable=False)
    currency = Column(String(3), nullable=False, default="MXN")

    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    __table_args__ = (
        Index("ix_orders_created_at_status", "created_at", "status"),
    )

    def __repr__(self):
        return f"<OrderModel(id='{self.id}', order_number='{self.order_number}', payment_status='{self.payment_status}')>"
