"""Test doubles for the payment gateway.

``FakeGateway`` answers outbound calls from attributes a test can tweak, while
webhook parsing is the real Paystack code keyed with ``WEBHOOK_SECRET``, so
signed deliveries built with ``signed_webhook`` go through genuine HMAC checks.
"""

import typing as t
from decimal import Decimal

import orjson

from payments.exceptions import PaymentGatewayError
from payments.gateways import GatewayStatus, InitializeResult, RefundResult, VerifyResult
from payments.gateways.paystack import PaystackGateway, compute_signature

WEBHOOK_SECRET = "sk_test_webhook_secret"


class FakeGateway(PaystackGateway):
    name = "fake"

    def __init__(self) -> None:
        super().__init__(secret_key=WEBHOOK_SECRET, base_url="https://gateway.test")
        self.verify_status = GatewayStatus.SUCCESS
        self.verify_amount: Decimal | None = None
        self.verify_currency: str | None = None
        self.refund_processed = True
        self.fail_initialize = False
        self.fail_refund = False
        self.initialized: list[str] = []
        self.verified: list[str] = []
        self.refunds: list[tuple[str, Decimal]] = []

    def initialize(self, transaction: t.Any, email: str, callback_url: str) -> InitializeResult:
        if self.fail_initialize:
            raise PaymentGatewayError(status=503)
        self.initialized.append(transaction.reference)
        return InitializeResult(
            authorization_url=f"https://checkout.gateway.test/{transaction.reference}",
            access_code=f"AC_{transaction.reference}",
            gateway_reference=transaction.reference,
        )

    def verify(self, transaction: t.Any) -> VerifyResult:
        self.verified.append(transaction.reference)
        return VerifyResult(
            status=self.verify_status,
            amount=self.verify_amount if self.verify_amount is not None else transaction.amount,
            currency=self.verify_currency or transaction.currency,
            gateway_reference=f"gw_{transaction.reference}",
            channel="card",
            reason="" if self.verify_status == GatewayStatus.SUCCESS else "Declined",
        )

    def refund(self, transaction: t.Any, amount: Decimal) -> RefundResult:
        if self.fail_refund:
            raise PaymentGatewayError(status=502)
        self.refunds.append((transaction.reference, amount))
        return RefundResult(gateway_reference=f"rf_{transaction.reference}", processed=self.refund_processed)


def signed_webhook(event_type: str, data: dict[str, t.Any]) -> tuple[bytes, dict[str, str]]:
    """Body and headers of a webhook delivery signed for ``FakeGateway``."""
    body = orjson.dumps({"event": event_type, "data": data})
    return body, {"X-Signature": compute_signature(body, WEBHOOK_SECRET)}


def charge_success(reference: str, amount: Decimal, currency: str = "NGN") -> dict[str, t.Any]:
    """``data`` member of a Paystack ``charge.success`` delivery."""
    return {
        "id": 302961,
        "reference": reference,
        "status": "success",
        "amount": int((amount * 100).to_integral_value()),
        "currency": currency,
        "channel": "card",
        "gateway_response": "Successful",
    }
