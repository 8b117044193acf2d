from functools import lru_cache

from django.conf import settings

from .base import (
    GatewayStatus,
    InitializeResult,
    NotificationKind,
    PaymentGateway,
    RefundResult,
    VerifyResult,
    WebhookNotification,
)


@lru_cache(maxsize=None)
def get_gateway(name: str | None = None) -> PaymentGateway:
    """Return the configured gateway backend (``settings.PAYMENT_GATEWAY`` by default)."""
    name = name or settings.PAYMENT_GATEWAY
    match name:
        case "paystack":
            from .paystack import PaystackGateway

            return PaystackGateway()
        case "stripe":
            from .stripe import StripeGateway

            return StripeGateway()
    raise ValueError(f"Unknown payment gateway: {name}")


__all__ = [
    "GatewayStatus",
    "InitializeResult",
    "NotificationKind",
    "PaymentGateway",
    "RefundResult",
    "VerifyResult",
    "WebhookNotification",
    "get_gateway",
]
