"""Stripe Checkout backend.

The transaction reference travels as the session's ``client_reference_id`` and in
the payment intent metadata, so every webhook can be mapped back to its record.
"""

import typing as t
from decimal import Decimal

import orjson
import stripe
import structlog
from django.conf import settings
from stripe.checkout import Session

from payments.exceptions import PaymentGatewayError, SignatureInvalidError

from .base import (
    GatewayStatus,
    InitializeResult,
    NotificationKind,
    RefundResult,
    VerifyResult,
    WebhookNotification,
)

if t.TYPE_CHECKING:
    from payments.models import Transaction

logger = structlog.get_logger(__name__)

SIGNATURE_HEADER = "Stripe-Signature"

EVENT_MAP = {
    "checkout.session.completed": NotificationKind.CHARGE_SUCCESS,
    "checkout.session.expired": NotificationKind.CHARGE_FAILED,
    "payment_intent.payment_failed": NotificationKind.CHARGE_FAILED,
    "charge.refunded": NotificationKind.REFUND_PROCESSED,
}


def _from_minor(amount: t.Any) -> Decimal | None:
    if amount is None:
        return None
    return (Decimal(str(amount)) / 100).quantize(Decimal("0.01"))


def _session_status(session: t.Mapping[str, t.Any]) -> GatewayStatus:
    if session.get("payment_status") in {"paid", "no_payment_required"}:
        return GatewayStatus.SUCCESS
    if session.get("status") == "expired":
        return GatewayStatus.FAILED
    return GatewayStatus.PENDING


class StripeGateway:
    name = "stripe"

    def __init__(self, secret_key: str | None = None, webhook_secret: str | None = None) -> None:
        self.secret_key = secret_key or settings.STRIPE_SECRET_KEY
        self.webhook_secret = webhook_secret or settings.STRIPE_WEBHOOK_SECRET
        stripe.api_key = self.secret_key
        stripe.max_network_retries = settings.PAYMENT_GATEWAY_MAX_ATTEMPTS - 1

    def _call(self, operation: str, func: t.Callable[..., t.Any], **kwargs: t.Any) -> t.Any:
        try:
            return func(**kwargs)
        except (stripe.APIConnectionError, stripe.RateLimitError) as e:
            logger.error("stripe_unreachable", operation=operation, error=str(e))
            raise PaymentGatewayError(retryable=True) from e
        except stripe.StripeError as e:
            logger.error("stripe_error", operation=operation, status_code=e.http_status, error=str(e))
            retryable = e.http_status is None or e.http_status >= 500
            raise PaymentGatewayError(e.user_message, status=e.http_status, retryable=retryable) from e

    def initialize(self, transaction: "Transaction", email: str, callback_url: str) -> InitializeResult:
        separator = "&" if "?" in callback_url else "?"
        session = self._call(
            "initialize",
            Session.create,
            mode="payment",
            customer_email=email,
            client_reference_id=transaction.reference,
            line_items=[
                {
                    "price_data": {
                        "currency": transaction.currency.lower(),
                        "product_data": {"name": transaction.get_type_display()},
                        "unit_amount": transaction.amount_minor,
                    },
                    "quantity": 1,
                }
            ],
            payment_intent_data={"metadata": {"reference": transaction.reference}},
            metadata={"reference": transaction.reference},
            success_url=f"{callback_url}{separator}reference={transaction.reference}",
            cancel_url=f"{callback_url}{separator}reference={transaction.reference}&cancelled=1",
        )
        return InitializeResult(authorization_url=session.url, gateway_reference=session.id)

    def _verify_result(self, session: t.Mapping[str, t.Any]) -> VerifyResult:
        return VerifyResult(
            status=_session_status(session),
            amount=_from_minor(session.get("amount_total")),
            currency=(session.get("currency") or "").upper() or None,
            gateway_reference=session.get("id") or "",
            channel="card",
            reason=session.get("status") or "",
            payload=dict(session),
        )

    def verify(self, transaction: "Transaction") -> VerifyResult:
        if not transaction.gateway_reference:
            return VerifyResult(status=GatewayStatus.PENDING, reason="no_session")
        session = self._call("verify", Session.retrieve, id=transaction.gateway_reference)
        return self._verify_result(session)

    def refund(self, transaction: "Transaction", amount: Decimal) -> RefundResult:
        session = self._call("refund", Session.retrieve, id=transaction.gateway_reference)
        refund = self._call(
            "refund",
            stripe.Refund.create,
            payment_intent=session["payment_intent"],
            amount=int((amount * 100).to_integral_value()),
            metadata={"reference": transaction.reference},
        )
        return RefundResult(gateway_reference=refund.id, processed=refund.status == "succeeded")

    def parse_webhook(self, body: bytes, headers: t.Mapping[str, str]) -> WebhookNotification:
        lowered = {key.lower(): value for key, value in headers.items()}
        signature = lowered.get(SIGNATURE_HEADER.lower())
        if not signature:
            raise SignatureInvalidError()
        try:
            stripe.Webhook.construct_event(body, signature, self.webhook_secret)
        except (ValueError, stripe.SignatureVerificationError) as e:
            raise SignatureInvalidError() from e

        payload = orjson.loads(body)
        event_type = payload.get("type", "")
        obj = (payload.get("data") or {}).get("object") or {}
        kind = EVENT_MAP.get(event_type, NotificationKind.UNKNOWN)
        reference = obj.get("client_reference_id") or (obj.get("metadata") or {}).get("reference")

        result = None
        if event_type.startswith("checkout.session."):
            result = self._verify_result(obj)
            if kind == NotificationKind.CHARGE_SUCCESS and result.status != GatewayStatus.SUCCESS:
                # Delayed payment methods complete the session before the money settles
                kind = NotificationKind.UNKNOWN
        elif kind == NotificationKind.CHARGE_FAILED:
            error = obj.get("last_payment_error") or {}
            result = VerifyResult(
                status=GatewayStatus.FAILED,
                amount=_from_minor(obj.get("amount")),
                currency=(obj.get("currency") or "").upper() or None,
                gateway_reference=obj.get("id") or "",
                reason=error.get("message") or "payment_failed",
                payload=obj,
            )
        return WebhookNotification(kind=kind, event_type=event_type, reference=reference, result=result, payload=obj)
