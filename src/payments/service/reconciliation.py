"""Transaction reconciliation.

A pending transaction can be settled by two independent callers: the client
polling ``verify`` and the gateway's webhook. Both funnel into ``finalize``,
whose single guarded UPDATE decides which caller performs the side effects.
Everybody else reads the terminal record back.
"""

import typing as t

import structlog
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.db.models import F
from django.utils import timezone
from django.utils.translation import gettext_lazy as _
from pydantic import ValidationError as PydanticValidationError

from events.exceptions import InvalidStateTransitionError
from events.models import Booking
from events.service import booking_service
from notifications.enums import NotificationType
from notifications.service import publish
from payments import gateways
from payments.exceptions import PaymentGatewayError, SignatureInvalidError
from payments.gateways import GatewayStatus, VerifyResult, WebhookNotification
from payments.models import Transaction

from . import draft_gate, refunds

logger = structlog.get_logger(__name__)

AMOUNT_MISMATCH = "amount_mismatch"
INACTIVE_BOOKING_REFUND_REASON = _("Payment received after the booking was closed. Automatic refund requested.")


def _resolve_outcome(txn: Transaction, result: VerifyResult) -> tuple[Transaction.Status | None, str]:
    """Map a gateway result onto the transaction's terminal status, if any."""
    match result.status:
        case GatewayStatus.PENDING:
            return None, ""
        case GatewayStatus.FAILED:
            return Transaction.Status.FAILED, result.reason or "payment_failed"
    amount_ok = result.amount is None or result.amount == txn.amount
    currency_ok = not result.currency or result.currency.upper() == txn.currency.upper()
    if not (amount_ok and currency_ok):
        logger.error(
            "transaction_amount_mismatch",
            reference=txn.reference,
            expected_amount=str(txn.amount),
            expected_currency=txn.currency,
            reported_amount=str(result.amount),
            reported_currency=result.currency,
        )
        return Transaction.Status.FAILED, AMOUNT_MISMATCH
    return Transaction.Status.COMPLETED, ""


def _on_completed(txn: Transaction) -> None:
    if txn.type != Transaction.Type.EVENT_BOOKING:
        return
    booking = Booking.objects.get(pk=txn.booking_id)
    try:
        booking_service.confirm_booking(booking)
    except InvalidStateTransitionError:
        booking.refresh_from_db()
        logger.error(
            "payment_for_inactive_booking",
            reference=txn.reference,
            booking_id=str(booking.pk),
            booking_status=booking.status,
        )
        refunds.open_automatic_refund(txn, str(INACTIVE_BOOKING_REFUND_REASON))


def _on_failed(txn: Transaction) -> None:
    if txn.booking_id is not None:
        # A retry opened after this attempt expired still holds the booking
        retry = Transaction.objects.pending().filter(booking_id=txn.booking_id).exclude(pk=txn.pk).first()
        if retry is not None:
            logger.info(
                "superseded_transaction_failed",
                reference=txn.reference,
                booking_id=str(txn.booking_id),
                open_reference=retry.reference,
            )
            return
        booking_service.fail_booking(Booking.objects.get(pk=txn.booking_id), txn.failure_reason)
    else:
        publish(NotificationType.PAYMENT_FAILED, user_id=txn.user_id, reference=txn.reference)


def finalize(reference: str, result: VerifyResult) -> Transaction:
    """Move a pending transaction to its terminal status exactly once.

    Calling this on a terminal transaction is a pure read. If any side effect of
    the winning transition fails, the status change rolls back with it and the
    transaction stays pending for the next verify, webhook or sweep.

    Raises:
        Transaction.DoesNotExist: unknown reference.
    """
    txn = Transaction.objects.get(reference=reference)
    if txn.is_terminal:
        logger.info("transaction_already_final", reference=reference, status=txn.status)
        return txn

    status, failure_reason = _resolve_outcome(txn, result)
    if status is None:
        return txn

    now = timezone.now()
    changes: dict[str, t.Any] = {
        "status": status,
        "failure_reason": failure_reason[:255],
        "gateway_response": result.payload,
        "channel": result.channel or F("channel"),
        "updated_at": now,
    }
    if result.gateway_reference:
        changes["gateway_reference"] = result.gateway_reference
    changes["paid_at" if status == Transaction.Status.COMPLETED else "failed_at"] = now

    with transaction.atomic():
        won = bool(Transaction.objects.filter(pk=txn.pk, status=Transaction.Status.PENDING).update(**changes))
        txn.refresh_from_db()
        if not won:
            logger.info("transaction_finalize_lost_race", reference=reference, status=txn.status)
            return txn
        if status == Transaction.Status.COMPLETED:
            _on_completed(txn)
        else:
            _on_failed(txn)

    logger.info("transaction_finalized", reference=reference, status=status, type=txn.type)
    if status == Transaction.Status.COMPLETED and txn.type == Transaction.Type.SERVICE_FEE:
        try:
            draft_gate.complete_draft(txn.reference)
        except (DjangoValidationError, PydanticValidationError, InvalidStateTransitionError) as e:
            # The payment stays completed; the draft can be completed explicitly later
            logger.error("draft_materialization_failed", reference=reference, error=str(e))
    txn.refresh_from_db()
    return txn


def verify(txn: Transaction) -> Transaction:
    """Ask the gateway for the outcome of a pending transaction and settle it.

    Terminal transactions are returned without contacting the gateway.
    """
    if txn.is_terminal:
        return txn
    result = gateways.get_gateway().verify(txn)
    return finalize(txn.reference, result)


class WebhookEventHandler:
    """Routes an authenticated webhook notification to its handler."""

    def __init__(self, notification: WebhookNotification) -> None:
        self.notification = notification

    def handle(self) -> None:
        handler_method = getattr(self, f"handle_{self.notification.kind}", self.handle_unknown)
        handler_method(self.notification)

    def handle_unknown(self, notification: WebhookNotification) -> None:
        logger.info("webhook_unhandled_event", event_type=notification.event_type, reference=notification.reference)

    def _finalize(self, notification: WebhookNotification) -> None:
        if not notification.reference or notification.result is None:
            logger.warning("webhook_missing_reference", event_type=notification.event_type)
            return
        try:
            finalize(notification.reference, notification.result)
        except Transaction.DoesNotExist:
            logger.warning("webhook_unknown_reference", reference=notification.reference)

    def handle_charge_success(self, notification: WebhookNotification) -> None:
        self._finalize(notification)

    def handle_charge_failed(self, notification: WebhookNotification) -> None:
        self._finalize(notification)

    def handle_refund_processed(self, notification: WebhookNotification) -> None:
        if not notification.reference:
            logger.warning("webhook_missing_reference", event_type=notification.event_type)
            return
        try:
            refunds.complete_refund(Transaction.objects.get(reference=notification.reference))
        except Transaction.DoesNotExist:
            logger.warning("webhook_unknown_reference", reference=notification.reference)


def parse_webhook(body: bytes, headers: t.Mapping[str, str]) -> WebhookNotification:
    """Authenticate a raw webhook delivery before anything else touches it."""
    try:
        return gateways.get_gateway().parse_webhook(body, headers)
    except SignatureInvalidError:
        logger.warning("webhook_signature_invalid", body_length=len(body))
        raise


def handle_webhook(notification: WebhookNotification) -> None:
    logger.info("webhook_received", event_type=notification.event_type, reference=notification.reference)
    WebhookEventHandler(notification).handle()


def reconcile_stale(limit: int = 200) -> dict[str, int]:
    """Re-verify pending transactions past their expiry and settle them."""
    summary = {"checked": 0, "completed": 0, "failed": 0, "pending": 0, "errors": 0}
    stale = list(Transaction.objects.stale().order_by("expires_at")[:limit])
    for txn in stale:
        summary["checked"] += 1
        try:
            txn = verify(txn)
        except PaymentGatewayError as e:
            summary["errors"] += 1
            logger.warning("stale_transaction_verify_failed", reference=txn.reference, error=str(e))
            continue
        summary[txn.status] += 1
    return summary
