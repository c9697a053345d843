"""Pytest bootstrap configuration.

Ensure mandatory environment variables are set before test collection
and module imports that depend on application settings.
"""
import os

# Mandatory secrets for settings validation
os.environ.setdefault("ORDER_TOKEN_SECRET", "test-order-token-secret")
os.environ.setdefault("SECRET_KEY", "test-admin-secret")
os.environ.setdefault("DATABASE__URL", "sqlite+aiosqlite:///:memory:")

from decimal import Decimal
from typing import Optional

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from application.dtos.payments import (
    MercadoPagoChargeback,
    MercadoPagoClaim,
    MercadoPagoPayment,
    PreferenceRequest,
    PreferenceResult,
)
from application.services.order_fulfillment_service import OrderFulfillmentService
from application.services.order_token_service import OrderTokenService
from application.services.webhook_service import WebhookService
from domain.order.entity import DraftStatus, LineItem, OrderDraft, ShippingAddress
from infrastructure.database import create_tables, drop_tables
from infrastructure.external.payments.mercadopago_client import compute_signature
from infrastructure.unit_of_work import make_uow_factory


TOKEN_SECRET = "test-order-token-secret"
WEBHOOK_SECRET = "whsec-test"


class StubGateway:
    """内存版 Mercado Pago：按ID返回预置资源，None 表示查询失败"""

    provider = "mercadopago"

    def __init__(self, *, configured: bool = True, webhook_secret: Optional[str] = None):
        self.configured = configured
        self.webhook_secret = webhook_secret
        self.payments: dict[str, MercadoPagoPayment] = {}
        self.chargebacks: dict[str, MercadoPagoChargeback] = {}
        self.claims: dict[str, MercadoPagoClaim] = {}
        self.preferences: list[PreferenceRequest] = []
        self.payment_lookups = 0

    @property
    def is_configured(self) -> bool:
        return self.configured

    @property
    def has_webhook_secret(self) -> bool:
        return bool(self.webhook_secret)

    def add_payment(self, payment_id: str, status: str, external_reference: Optional[str]) -> MercadoPagoPayment:
        payment = MercadoPagoPayment.model_validate(
            {"id": payment_id, "status": status, "external_reference": external_reference}
        )
        self.payments[payment_id] = payment
        return payment

    async def get_payment(self, payment_id: str) -> Optional[MercadoPagoPayment]:
        self.payment_lookups += 1
        return self.payments.get(str(payment_id))

    async def get_chargeback(self, chargeback_id: str) -> Optional[MercadoPagoChargeback]:
        return self.chargebacks.get(str(chargeback_id))

    async def get_claim(self, claim_id: str) -> Optional[MercadoPagoClaim]:
        return self.claims.get(str(claim_id))

    async def create_preference(self, req: PreferenceRequest) -> Optional[PreferenceResult]:
        self.preferences.append(req)
        return PreferenceResult(
            id=f"pref-{req.external_reference}",
            init_point=f"https://mp.test/checkout?pref=pref-{req.external_reference}",
        )

    def verify_signature(self, x_signature, x_request_id, data_id) -> bool:
        parts = dict(p.split("=", 1) for p in (x_signature or "").split(",") if "=" in p)
        if not self.webhook_secret or "ts" not in parts or "v1" not in parts:
            return False
        return parts["v1"] == compute_signature(self.webhook_secret, data_id, x_request_id, parts["ts"])


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await create_tables(bind=engine)
    yield engine
    await drop_tables(bind=engine)
    await engine.dispose()


@pytest.fixture
def uow_factory(engine):
    return make_uow_factory(async_sessionmaker(bind=engine, expire_on_commit=False))


@pytest.fixture
def gateway():
    return StubGateway()


@pytest.fixture
def token_service():
    return OrderTokenService(TOKEN_SECRET, base_url="https://shop.test")


@pytest.fixture
def fulfillment(uow_factory):
    counter = iter(range(1000, 10000))
    return OrderFulfillmentService(uow_factory, order_number_factory=lambda: f"MIST-20250101-{next(counter)}")


@pytest.fixture
def webhook_service(uow_factory, gateway, fulfillment):
    return WebhookService(uow_factory, gateway, fulfillment, processing_lease_seconds=120)


@pytest.fixture
def make_draft(uow_factory):
    async def _make(**overrides) -> OrderDraft:
        draft = OrderDraft(
            id=None,
            status=DraftStatus.PENDING,
            customer_name="Ana López",
            customer_email="ana@example.com",
            shipping_address=ShippingAddress(street="Av. Reforma 1", city="CDMX", state="CDMX", zip="06000"),
            items=[LineItem(product_id="p-1", product_name="Vela", quantity=2, unit_price=Decimal("100.00"))],
            subtotal=Decimal("200.00"),
            shipping_cost=Decimal("150.00"),
            tax=Decimal("32.00"),
            total_amount=Decimal("382.00"),
        )
        for key, value in overrides.items():
            setattr(draft, key, value)
        async with uow_factory() as uow:
            return await uow.order_draft_repository.create(draft)

    return _make


@pytest_asyncio.fixture
async def client(uow_factory, gateway, token_service):
    from main import app
    from api.dependencies import get_order_token_service, get_payment_gateway, get_uow_factory

    app.dependency_overrides[get_uow_factory] = lambda: uow_factory
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    app.dependency_overrides[get_order_token_service] = lambda: token_service
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers():
    from core.security import create_admin_token

    return {"Authorization": f"Bearer {create_admin_token('admin@mistika.test')}"}
