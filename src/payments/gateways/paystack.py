"""Paystack backend.

Amounts travel in the currency's minor unit. Webhooks are signed with an
HMAC-SHA512 hex digest of the raw request body keyed with the secret key.
"""

import hashlib
import hmac
import typing as t
from decimal import Decimal

import orjson
import requests
import structlog
from django.conf import settings
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_random_exponential

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

FALLBACK_SIGNATURE_HEADER = "X-Paystack-Signature"

STATUS_MAP = {
    "success": GatewayStatus.SUCCESS,
    "failed": GatewayStatus.FAILED,
    "abandoned": GatewayStatus.FAILED,
    "reversed": GatewayStatus.FAILED,
}

EVENT_MAP = {
    "charge.success": NotificationKind.CHARGE_SUCCESS,
    "charge.failed": NotificationKind.CHARGE_FAILED,
    "refund.processed": NotificationKind.REFUND_PROCESSED,
}


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, PaymentGatewayError) and exc.retryable


def _from_minor(amount: t.Any) -> Decimal | None:
    if amount is None:
        return None
    return (Decimal(str(amount)) / 100).quantize(Decimal("0.01"))


def compute_signature(body: bytes, secret: str) -> str:
    return hmac.new(secret.encode(), body, hashlib.sha512).hexdigest()


class PaystackGateway:
    name = "paystack"

    def __init__(self, secret_key: str | None = None, base_url: str | None = None) -> None:
        self.secret_key = secret_key or settings.PAYSTACK_SECRET_KEY
        self.base_url = (base_url or settings.PAYSTACK_BASE_URL).rstrip("/")
        self.timeout = (settings.PAYMENT_GATEWAY_CONNECT_TIMEOUT, settings.PAYMENT_GATEWAY_READ_TIMEOUT)

    @retry(
        retry=retry_if_exception(_is_retryable),
        wait=wait_random_exponential(multiplier=1, max=8),
        stop=stop_after_attempt(settings.PAYMENT_GATEWAY_MAX_ATTEMPTS),
        reraise=True,
    )
    def _request(self, method: str, path: str, **kwargs: t.Any) -> dict[str, t.Any]:
        """Call the Paystack API and return the ``data`` member of its envelope.

        Connection errors, timeouts, 429 and 5xx answers are retried; any other
        error is surfaced immediately.
        """
        url = f"{self.base_url}{path}"
        try:
            response = requests.request(
                method,
                url,
                headers={"Authorization": f"Bearer {self.secret_key}", "Content-Type": "application/json"},
                timeout=self.timeout,
                **kwargs,
            )
        except (requests.ConnectionError, requests.Timeout) as e:
            logger.error("paystack_unreachable", path=path, error=str(e))
            raise PaymentGatewayError(retryable=True) from e

        if response.status_code == 429 or response.status_code >= 500:
            logger.error("paystack_error", path=path, status_code=response.status_code)
            raise PaymentGatewayError(status=response.status_code, retryable=True)

        try:
            body = response.json()
        except ValueError as e:
            logger.error("paystack_invalid_response", path=path, status_code=response.status_code)
            raise PaymentGatewayError(status=response.status_code, retryable=False) from e

        if response.status_code >= 400 or not body.get("status"):
            logger.error(
                "paystack_error",
                path=path,
                status_code=response.status_code,
                gateway_message=body.get("message"),
            )
            raise PaymentGatewayError(body.get("message"), status=response.status_code, retryable=False)
        return t.cast(dict[str, t.Any], body.get("data") or {})

    def initialize(self, transaction: "Transaction", email: str, callback_url: str) -> InitializeResult:
        data = self._request(
            "POST",
            "/transaction/initialize",
            json={
                "email": email,
                "amount": transaction.amount_minor,
                "currency": transaction.currency,
                "reference": transaction.reference,
                "callback_url": callback_url,
                "channels": settings.PAYSTACK_CHANNELS,
                "metadata": {"transaction_type": transaction.type, "booking_id": str(transaction.booking_id or "")},
            },
        )
        return InitializeResult(
            authorization_url=data["authorization_url"],
            access_code=data.get("access_code", ""),
            gateway_reference=data.get("reference", transaction.reference),
        )

    def _verify_result(self, data: dict[str, t.Any]) -> VerifyResult:
        return VerifyResult(
            status=STATUS_MAP.get(data.get("status", ""), GatewayStatus.PENDING),
            amount=_from_minor(data.get("amount")),
            currency=data.get("currency"),
            gateway_reference=str(data.get("id", "")),
            channel=data.get("channel") or "",
            reason=data.get("gateway_response") or "",
            payload=data,
        )

    def verify(self, transaction: "Transaction") -> VerifyResult:
        data = self._request("GET", f"/transaction/verify/{transaction.reference}")
        return self._verify_result(data)

    def refund(self, transaction: "Transaction", amount: Decimal) -> RefundResult:
        data = self._request(
            "POST",
            "/refund",
            json={"transaction": transaction.reference, "amount": int((amount * 100).to_integral_value())},
        )
        return RefundResult(
            gateway_reference=str(data.get("id", "")),
            processed=data.get("status") == "processed",
            payload=data,
        )

    def _signature_from(self, headers: t.Mapping[str, str]) -> str | None:
        lowered = {key.lower(): value for key, value in headers.items()}
        for header in (settings.PAYMENT_WEBHOOK_SIGNATURE_HEADER, FALLBACK_SIGNATURE_HEADER):
            if signature := lowered.get(header.lower()):
                return signature
        return None

    def parse_webhook(self, body: bytes, headers: t.Mapping[str, str]) -> WebhookNotification:
        signature = self._signature_from(headers)
        expected = compute_signature(body, self.secret_key)
        if not signature or not hmac.compare_digest(signature, expected):
            raise SignatureInvalidError()

        try:
            payload = orjson.loads(body)
        except orjson.JSONDecodeError as e:
            raise SignatureInvalidError("Malformed webhook payload.") from e

        event_type = payload.get("event", "")
        data = payload.get("data") or {}
        kind = EVENT_MAP.get(event_type, NotificationKind.UNKNOWN)
        reference = data.get("reference") or data.get("transaction_reference")
        if kind == NotificationKind.REFUND_PROCESSED and not reference:
            reference = (data.get("transaction") or {}).get("reference")
        result = None
        if kind in (NotificationKind.CHARGE_SUCCESS, NotificationKind.CHARGE_FAILED):
            result = self._verify_result(data)
            if kind == NotificationKind.CHARGE_FAILED:
                result = VerifyResult(
                    status=GatewayStatus.FAILED,
                    amount=result.amount,
                    currency=result.currency,
                    gateway_reference=result.gateway_reference,
                    channel=result.channel,
                    reason=result.reason or "charge_failed",
                    payload=data,
                )
        return WebhookNotification(kind=kind, event_type=event_type, reference=reference, result=result, payload=data)
