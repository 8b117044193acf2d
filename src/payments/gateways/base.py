"""Protocol definitions for payment gateway backends.

Every backend normalizes its provider's vocabulary into the small set of result
types below, so reconciliation never needs to know which provider is configured.
"""

import enum
import typing as t
from dataclasses import dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from payments.models import Transaction


class GatewayStatus(enum.StrEnum):
    SUCCESS = "success"
    FAILED = "failed"
    PENDING = "pending"


class NotificationKind(enum.StrEnum):
    CHARGE_SUCCESS = "charge_success"
    CHARGE_FAILED = "charge_failed"
    REFUND_PROCESSED = "refund_processed"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class InitializeResult:
    authorization_url: str
    access_code: str = ""
    gateway_reference: str = ""


@dataclass(frozen=True)
class VerifyResult:
    status: GatewayStatus
    amount: Decimal | None = None
    currency: str | None = None
    gateway_reference: str = ""
    channel: str = ""
    reason: str = ""
    payload: dict[str, t.Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RefundResult:
    gateway_reference: str
    processed: bool
    payload: dict[str, t.Any] = field(default_factory=dict)


@dataclass(frozen=True)
class WebhookNotification:
    kind: NotificationKind
    event_type: str
    reference: str | None
    result: VerifyResult | None = None
    payload: dict[str, t.Any] = field(default_factory=dict)


class PaymentGateway(Protocol):
    """Protocol for payment gateway backends."""

    name: str

    def initialize(self, transaction: "Transaction", email: str, callback_url: str) -> InitializeResult:
        """Open a payment with the provider and return where the payer should be sent.

        Raises:
            PaymentGatewayError: the provider was unreachable or rejected the request.
        """
        ...

    def verify(self, transaction: "Transaction") -> VerifyResult:
        """Ask the provider for the current outcome of a payment."""
        ...

    def refund(self, transaction: "Transaction", amount: Decimal) -> RefundResult:
        """Refund part or all of a completed payment."""
        ...

    def parse_webhook(self, body: bytes, headers: t.Mapping[str, str]) -> WebhookNotification:
        """Authenticate and normalize a raw webhook delivery.

        Raises:
            SignatureInvalidError: the signature is missing or does not match the body.
        """
        ...
