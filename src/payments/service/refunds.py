"""Refund workflow.

``refund_status`` is its own small state machine on the transaction::

    none -> requested -> approved -> completed
                      -> rejected

Each step is a conditional UPDATE on the expected prior status.
"""

import typing as t
from decimal import Decimal

import structlog
from django.db import transaction
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from accounts.models import BoxOfficeUser
from events.exceptions import InvalidStateTransitionError, RefundNotAllowedError
from events.models import Booking
from events.service import booking_service
from events.service.refund_policy import compute_booking_refund
from notifications.enums import NotificationType
from notifications.service import publish
from payments import gateways
from payments.models import Transaction

logger = structlog.get_logger(__name__)


def can_process_refund(txn: Transaction, user: BoxOfficeUser) -> bool:
    if user.is_staff:
        return True
    return txn.booking_id is not None and txn.booking.event.organizer_id == user.pk  # type: ignore[union-attr]


def _open_request(txn: Transaction, amount: Decimal, reason: str) -> bool:
    now = timezone.now()
    return bool(
        Transaction.objects.filter(
            pk=txn.pk, status=Transaction.Status.COMPLETED, refund_status=Transaction.RefundStatus.NONE
        ).update(
            refund_status=Transaction.RefundStatus.REQUESTED,
            refund_amount=amount,
            refund_reason=reason,
            refund_requested_at=now,
            updated_at=now,
        )
    )


@transaction.atomic
def request_refund(txn: Transaction, user: BoxOfficeUser, reason: str = "") -> Transaction:
    """Attendee asks for a refund of a completed booking payment.

    Raises:
        RefundNotAllowedError: wrong transaction type or state, or nothing refundable.
        RefundWindowClosedError: too close to the event.
        InvalidStateTransitionError: a refund was already requested.
    """
    if txn.user_id != user.pk:
        raise RefundNotAllowedError(_("Only the payer can request a refund."))
    if txn.type != Transaction.Type.EVENT_BOOKING:
        raise RefundNotAllowedError(_("Service fees are not refundable."))
    if txn.status != Transaction.Status.COMPLETED:
        raise RefundNotAllowedError(_("Only completed payments can be refunded."))
    booking = Booking.objects.select_related("event").get(pk=txn.booking_id)
    if booking.status != Booking.BookingStatus.CONFIRMED:
        raise RefundNotAllowedError(_("Only confirmed bookings can be refunded."))

    amount = min(compute_booking_refund(booking), txn.amount)
    if amount <= 0:
        raise RefundNotAllowedError(_("This event does not offer refunds."))
    if not _open_request(txn, amount, reason):
        raise InvalidStateTransitionError(_("A refund has already been requested for this payment."))

    txn.refresh_from_db()
    publish(
        NotificationType.REFUND_REQUESTED,
        user_id=booking.event.organizer_id,
        reference=txn.reference,
        amount=txn.refund_amount,
    )
    logger.info("refund_requested", reference=txn.reference, amount=str(amount))
    return txn


def open_automatic_refund(txn: Transaction, reason: str) -> bool:
    """Queue the whole payment for refund (money arrived for a closed booking)."""
    opened = _open_request(txn, txn.amount, reason)
    if opened:
        logger.warning("refund_requested_automatically", reference=txn.reference, amount=str(txn.amount))
    return opened


def open_cancellation_refund(booking: Booking, reason: str) -> Transaction | None:
    """Open a refund request for a cancelled booking that is owed money."""
    booking.refresh_from_db()
    if booking.status != Booking.BookingStatus.CANCELLED or booking.refund_amount <= 0:
        return None
    txn = booking.transactions.filter(
        type=Transaction.Type.EVENT_BOOKING, status=Transaction.Status.COMPLETED
    ).first()
    if txn is None or not _open_request(txn, min(booking.refund_amount, txn.amount), reason):
        return None
    txn.refresh_from_db()
    publish(
        NotificationType.REFUND_REQUESTED,
        user_id=booking.event.organizer_id,
        reference=txn.reference,
        amount=txn.refund_amount,
    )
    logger.info("refund_requested", reference=txn.reference, amount=str(txn.refund_amount), source="cancellation")
    return txn


@transaction.atomic
def approve_refund(txn: Transaction, user: BoxOfficeUser) -> Transaction:
    """Approve a requested refund, void remaining tickets and queue the gateway refund."""
    from payments.tasks import issue_gateway_refund

    now = timezone.now()
    won = Transaction.objects.filter(pk=txn.pk, refund_status=Transaction.RefundStatus.REQUESTED).update(
        refund_status=Transaction.RefundStatus.APPROVED,
        refund_processed_at=now,
        refund_processed_by=user,
        updated_at=now,
    )
    if not won:
        raise InvalidStateTransitionError(_("There is no pending refund request for this payment."))

    txn.refresh_from_db()
    if txn.booking_id is not None:
        booking_service.release_for_refund(Booking.objects.get(pk=txn.booking_id))

    txn_id = str(txn.pk)
    transaction.on_commit(lambda: issue_gateway_refund.delay(txn_id))
    publish(NotificationType.REFUND_APPROVED, user_id=txn.user_id, reference=txn.reference, amount=txn.refund_amount)
    logger.info("refund_approved", reference=txn.reference, processed_by=str(user.pk))
    return txn


def reject_refund(txn: Transaction, user: BoxOfficeUser, reason: str) -> Transaction:
    now = timezone.now()
    won = Transaction.objects.filter(pk=txn.pk, refund_status=Transaction.RefundStatus.REQUESTED).update(
        refund_status=Transaction.RefundStatus.REJECTED,
        refund_rejection_reason=reason,
        refund_processed_at=now,
        refund_processed_by=user,
        updated_at=now,
    )
    if not won:
        raise InvalidStateTransitionError(_("There is no pending refund request for this payment."))
    txn.refresh_from_db()
    publish(NotificationType.REFUND_REJECTED, user_id=txn.user_id, reference=txn.reference, reason=reason)
    logger.info("refund_rejected", reference=txn.reference, processed_by=str(user.pk))
    return txn


def process_refund(
    txn: Transaction, user: BoxOfficeUser, action: t.Literal["approve", "reject"], reason: str = ""
) -> Transaction:
    if txn.type != Transaction.Type.EVENT_BOOKING:
        raise RefundNotAllowedError(_("Service fees are not refundable."))
    if action == "approve":
        return approve_refund(txn, user)
    return reject_refund(txn, user, reason)


def issue_refund(txn: Transaction) -> Transaction:
    """Send an approved refund to the gateway.

    Raises:
        PaymentGatewayError: the provider failed; the caller retries.
    """
    if txn.refund_status != Transaction.RefundStatus.APPROVED:
        logger.info("refund_issue_skipped", reference=txn.reference, refund_status=txn.refund_status)
        return txn
    result = gateways.get_gateway().refund(txn, t.cast(Decimal, txn.refund_amount))
    Transaction.objects.filter(pk=txn.pk).update(
        metadata={**txn.metadata, "refund_gateway_reference": result.gateway_reference},
        updated_at=timezone.now(),
    )
    logger.info(
        "refund_issued",
        reference=txn.reference,
        gateway_reference=result.gateway_reference,
        processed=result.processed,
    )
    if result.processed:
        return complete_refund(txn)
    txn.refresh_from_db()
    return txn


@transaction.atomic
def complete_refund(txn: Transaction) -> Transaction:
    """``approved -> completed`` once the gateway reports the money as returned."""
    now = timezone.now()
    won = Transaction.objects.filter(pk=txn.pk, refund_status=Transaction.RefundStatus.APPROVED).update(
        refund_status=Transaction.RefundStatus.COMPLETED, refund_completed_at=now, updated_at=now
    )
    txn.refresh_from_db()
    if not won:
        logger.warning("refund_completion_ignored", reference=txn.reference, refund_status=txn.refund_status)
        return txn
    if txn.booking_id is not None:
        booking_service.mark_refunded(Booking.objects.get(pk=txn.booking_id))
    publish(NotificationType.REFUND_COMPLETED, user_id=txn.user_id, reference=txn.reference, amount=txn.refund_amount)
    logger.info("refund_completed", reference=txn.reference)
    return txn
