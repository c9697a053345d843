"""
Payment gateway port (application/ports) exposing a replaceable protocol.

Application depends on this Protocol; infrastructure implements adapters.
Lookups never raise for provider/network failures: they return ``None`` so the
caller decides whether the event should be marked failed.
"""
from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable

from application.dtos.payments import (
    MercadoPagoChargeback,
    MercadoPagoClaim,
    MercadoPagoPayment,
    PreferenceRequest,
    PreferenceResult,
)


@runtime_checkable
class PaymentGateway(Protocol):
    """Gateway protocol for the Mercado Pago provider."""

    provider: str

    @property
    def is_configured(self) -> bool: ...

    @property
    def has_webhook_secret(self) -> bool: ...

    async def get_payment(self, payment_id: str) -> Optional[MercadoPagoPayment]: ...

    async def get_chargeback(self, chargeback_id: str) -> Optional[MercadoPagoChargeback]: ...

    async def get_claim(self, claim_id: str) -> Optional[MercadoPagoClaim]: ...

    async def create_preference(self, req: PreferenceRequest) -> Optional[PreferenceResult]: ...

    def verify_signature(self, x_signature: Optional[str], x_request_id: Optional[str], data_id: str) -> bool: ...
