"""
Payment specific codes and Mercado Pago status mapping.
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    # Generic success
    SUCCESS = 0

    # Provider/Network errors (6xxxx)
    PROVIDER_ERROR = 60000
    PROVIDER_NOT_CONFIGURED = 60001
    SIGNATURE_ERROR = 60002
    LOOKUP_FAILED = 60003


# Mercado Pago payment status -> checkout status
# Ref: https://www.mercadopago.com.mx/developers/es/docs/checkout-api/landing
MP_STATUS_TO_CHECKOUT_STATUS = {
    "approved": "APPROVED",
    "pending": "PENDING",
    "in_process": "PENDING",
    "in_mediation": "PENDING",
    "in_collection": "PENDING",
    "rejected": "REJECTED",
    "cancelled": "CANCELLED",
    "refunded": "APPROVED",
    "charged_back": "APPROVED",
    "expired": "EXPIRED",
}

MP_REVERSED_STATUSES = frozenset({"refunded", "charged_back"})

# Checkout statuses after which the customer may start a new checkout
RETRYABLE_CHECKOUT_STATUSES = frozenset({"REJECTED", "CANCELLED", "EXPIRED", "FAILED"})


def mp_status_to_checkout_status(mp_status: str | None) -> str:
    return MP_STATUS_TO_CHECKOUT_STATUS.get((mp_status or "").lower(), "PENDING")


def is_approved(mp_status: str | None) -> bool:
    return (mp_status or "").lower() == "approved"


def is_reversed(mp_status: str | None) -> bool:
    return (mp_status or "").lower() in MP_REVERSED_STATUSES
