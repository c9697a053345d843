"""Infrastructure models package exports."""
from .base import Base, metadata
from .order import OrderDraftModel, OrderModel
from .webhook_event import WebhookEventModel

__all__ = [
    "Base",
    "metadata",
    "OrderDraftModel",
    "OrderModel",
    "WebhookEventModel",
]
