"""Opening transactions with the payment gateway."""

import typing as t
from decimal import Decimal

import structlog
from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from accounts.models import BoxOfficeUser
from events.exceptions import InvalidStateTransitionError
from events.models import Booking
from payments import gateways
from payments.exceptions import PaymentGatewayError
from payments.models import Transaction

logger = structlog.get_logger(__name__)

GATEWAY_INITIALIZE_FAILED = "gateway_initialize_failed"


def open_transaction(
    user: BoxOfficeUser,
    *,
    type: Transaction.Type,
    amount: Decimal,
    email: str,
    booking: Booking | None = None,
    metadata: dict[str, t.Any] | None = None,
    callback_url: str | None = None,
    currency: str | None = None,
) -> Transaction:
    """Record a pending transaction and hand it to the gateway.

    The gateway call runs outside any database transaction so a slow provider
    never holds row locks. If the provider cannot be reached the transaction is
    marked failed and the error is re-raised; the booking keeps its reservation
    until it expires so the client can retry with a fresh transaction.
    """
    gateway = gateways.get_gateway()
    txn = Transaction.objects.create(
        user=user,
        type=type,
        booking=booking,
        amount=amount,
        currency=currency or settings.DEFAULT_CURRENCY,
        email=email,
        gateway=gateway.name,
        metadata=metadata or {},
    )
    try:
        result = gateway.initialize(txn, email, callback_url or settings.PAYMENT_CALLBACK_URL)
    except PaymentGatewayError as e:
        now = timezone.now()
        Transaction.objects.filter(pk=txn.pk, status=Transaction.Status.PENDING).update(
            status=Transaction.Status.FAILED, failure_reason=GATEWAY_INITIALIZE_FAILED, failed_at=now, updated_at=now
        )
        logger.error(
            "transaction_initialize_failed",
            reference=txn.reference,
            gateway=gateway.name,
            status_code=e.gateway_status,
        )
        raise

    Transaction.objects.filter(pk=txn.pk).update(
        authorization_url=result.authorization_url,
        access_code=result.access_code,
        gateway_reference=result.gateway_reference,
        updated_at=timezone.now(),
    )
    txn.refresh_from_db()
    logger.info(
        "transaction_initialized",
        reference=txn.reference,
        type=txn.type,
        amount=str(txn.amount),
        gateway=gateway.name,
    )
    return txn


def initialize_transaction(
    user: BoxOfficeUser,
    booking: Booking,
    *,
    amount: Decimal | None = None,
    email: str | None = None,
    callback_url: str | None = None,
) -> Transaction:
    """Open (or resume) the payment for a pending booking.

    A still-open transaction for the same booking is returned instead of
    creating a second one. The amount is always the booking total; a client
    supplied amount is only checked against it.
    """
    if booking.status != Booking.BookingStatus.PENDING or booking.has_expired():
        raise InvalidStateTransitionError(_("This booking is no longer awaiting payment."))
    if booking.total <= 0:
        raise InvalidStateTransitionError(_("This booking does not require payment."))
    if amount is not None and amount != booking.total:
        raise DjangoValidationError({"amount": [_("The amount does not match the booking total.")]})

    existing = (
        Transaction.objects.pending()
        .filter(booking=booking, expires_at__gt=timezone.now())
        .exclude(authorization_url="")
        .first()
    )
    if existing is not None:
        logger.info("transaction_resumed", reference=existing.reference, booking_id=str(booking.pk))
        return existing

    return open_transaction(
        user,
        type=Transaction.Type.EVENT_BOOKING,
        amount=booking.total,
        email=email or user.email,
        booking=booking,
        currency=booking.currency,
        callback_url=callback_url,
        metadata={"order_number": booking.order_number, "event_id": str(booking.event_id)},
    )
