"""Event creation and the publication gate."""

import typing as t

import structlog
from django.db import transaction
from django.utils import timezone
from django.utils.translation import gettext_lazy as _
from ninja.errors import HttpError

from accounts.models import BoxOfficeUser
from events.exceptions import InvalidStateTransitionError
from events.models import Event, TicketType
from events.schema import EventCreateSchema
from notifications.enums import NotificationType
from notifications.service import publish

logger = structlog.get_logger(__name__)


@transaction.atomic
def create_event(
    organizer: BoxOfficeUser,
    payload: EventCreateSchema,
    *,
    status: Event.EventStatus = Event.EventStatus.DRAFT,
    **extra: t.Any,
) -> Event:
    """Create an event with its ticket types.

    When the payload carries no ticket types a single default type is built from
    the legacy ``price``/``capacity`` pair. ``extra`` lets the draft gate stamp
    the service fee fields before the first save so that a published status
    passes validation.
    """
    data = payload.model_dump(exclude={"ticket_types", "price", "capacity"}, exclude_none=True)
    event = Event(organizer=organizer, status=status, **data, **extra)
    if status == Event.EventStatus.PUBLISHED:
        event.published_at = timezone.now()
    event.save()
    for ticket_type in payload.resolved_ticket_types():
        TicketType.objects.create(event=event, **ticket_type.model_dump())

    logger.info(
        "event_created",
        event_id=str(event.pk),
        organizer_id=str(organizer.pk),
        status=event.status,
        ticket_types=event.ticket_types.count(),
    )
    return event


@transaction.atomic
def publish_event(event: Event, user: BoxOfficeUser) -> Event:
    """Publish a draft event.

    Events where every ticket is free cannot be published directly: they must go
    through the service fee flow, which creates them already published.
    """
    if event.organizer_id != user.pk and not user.is_staff:
        raise HttpError(403, str(_("You do not have permission to publish this event.")))
    event = Event.objects.select_for_update().get(pk=event.pk)
    if event.status != Event.EventStatus.DRAFT:
        raise InvalidStateTransitionError(_("Only draft events can be published."))
    if event.is_zero_price() and not (
        event.requires_service_fee and event.service_fee_status == Event.ServiceFeeStatus.PAID
    ):
        raise HttpError(
            400,
            str(
                _(
                    "Free events require an upfront service fee. "
                    "Use the service fee payment flow to create this event."
                )
            ),
        )

    event.status = Event.EventStatus.PUBLISHED
    event.published_at = timezone.now()
    event.save(update_fields=["status", "published_at", "updated_at"])

    publish(NotificationType.EVENT_PUBLISHED, user_id=event.organizer_id, event_id=event.pk, title=event.title)
    logger.info("event_published", event_id=str(event.pk))
    return event
