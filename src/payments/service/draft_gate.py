"""Draft-event publication gate.

Free events are paid for before they exist: the service fee transaction carries
the prospective event in its metadata, and the event is materialized once that
transaction completes. The link from transaction to event is written with a
conditional UPDATE in the same database transaction as the event itself, and
the event's one-to-one ``service_fee_transaction`` column fences concurrent
callers, so a transaction can only ever produce one event.
"""

import typing as t

import structlog
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import IntegrityError, transaction
from django.utils import timezone
from django.utils.translation import gettext_lazy as _
from pydantic import ValidationError as PydanticValidationError

from accounts.models import BoxOfficeUser
from events.exceptions import InvalidStateTransitionError
from events.models import Event
from events.schema import EventCreateSchema
from events.service import event_service
from notifications.enums import NotificationType
from notifications.service import publish
from payments.models import Transaction

from .checkout import open_transaction
from .service_fee import calculate_service_fee

if t.TYPE_CHECKING:
    from payments.schema import ServiceFeeInitializeSchema

logger = structlog.get_logger(__name__)


class _AlreadyLinked(Exception):
    pass


def initialize_service_fee(user: BoxOfficeUser, payload: "ServiceFeeInitializeSchema") -> Transaction:
    """Price the service fee and open its transaction, carrying the draft event."""
    quote = calculate_service_fee(payload.attendance_range, payload.agreement.type, payload.agreement.amount)
    metadata = {
        "is_draft": True,
        "event_data": payload.event.model_dump(mode="json"),
        "attendance_range": payload.attendance_range,
        "agreement": {
            **payload.agreement.model_dump(mode="json"),
            "accepted_at": timezone.now().isoformat(),
            "service_fee": str(quote.amount),
        },
    }
    txn = open_transaction(
        user,
        type=Transaction.Type.SERVICE_FEE,
        amount=quote.amount,
        email=payload.email or user.email,
        currency=quote.currency,
        metadata=metadata,
        callback_url=payload.callback_url,
    )
    logger.info("service_fee_initialized", reference=txn.reference, amount=str(quote.amount))
    return txn


def _draft_payload(txn: Transaction) -> EventCreateSchema:
    event_data = txn.metadata.get("event_data")
    if not event_data:
        raise InvalidStateTransitionError(_("This transaction does not carry a draft event."))
    try:
        return EventCreateSchema.model_validate(event_data)
    except PydanticValidationError as e:
        raise DjangoValidationError({"event": [error["msg"] for error in e.errors()]}) from e


def complete_draft(reference: str) -> Event:
    """Materialize the draft event of a completed service fee transaction.

    Calling this again, concurrently or later, returns the event created the
    first time.

    Raises:
        Transaction.DoesNotExist: unknown reference.
        InvalidStateTransitionError: not a completed service fee transaction.
    """
    txn = Transaction.objects.select_related("event", "user").get(reference=reference)
    if txn.type != Transaction.Type.SERVICE_FEE:
        raise InvalidStateTransitionError(_("Only service fee transactions carry a draft event."))
    if txn.event_id is not None:
        return t.cast(Event, txn.event)
    if txn.status != Transaction.Status.COMPLETED:
        raise InvalidStateTransitionError(_("The service fee has not been paid yet."))

    payload = _draft_payload(txn)
    try:
        with transaction.atomic():
            event = event_service.create_event(
                txn.user,
                payload,
                status=Event.EventStatus.PUBLISHED,
                requires_service_fee=True,
                service_fee_status=Event.ServiceFeeStatus.PAID,
                service_fee_amount=txn.amount,
                service_fee_reference=txn.reference,
                service_fee_transaction=txn,
                agreement=txn.metadata.get("agreement", {}),
            )
            metadata = {**txn.metadata, "is_draft": False, "event_id": str(event.pk)}
            linked = Transaction.objects.filter(pk=txn.pk, event__isnull=True).update(
                event=event, metadata=metadata, updated_at=timezone.now()
            )
            if not linked:
                raise _AlreadyLinked()
    except (_AlreadyLinked, IntegrityError, DjangoValidationError):
        txn.refresh_from_db()
        if txn.event_id is None:
            raise
        logger.info("draft_event_already_materialized", reference=reference, event_id=str(txn.event_id))
        return Event.objects.get(pk=txn.event_id)

    publish(NotificationType.EVENT_PUBLISHED, user_id=event.organizer_id, event_id=event.pk, title=event.title)
    logger.info("draft_event_materialized", reference=reference, event_id=str(event.pk))
    return event
