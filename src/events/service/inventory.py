"""Atomic capacity reservation for ticket types.

Availability check and decrement happen in a single conditional UPDATE, so
concurrent buyers of the last N tickets are linearized by the database: exactly
N of them win and the rest see ``InsufficientCapacityError``.
"""

import typing as t
from dataclasses import dataclass
from uuid import UUID

import structlog
from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db.models import F
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from events.exceptions import (
    EventNotBookableError,
    InsufficientCapacityError,
    InvalidStateTransitionError,
    TicketTypeNotFoundError,
)
from events.models import Event, TicketType

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ReservationToken:
    """Proof of a successful claim on ``quantity`` units of a ticket type."""

    event_id: UUID
    ticket_type_id: UUID
    quantity: int


def resolve_ticket_type(event: Event, ticket_type: str | UUID | None) -> TicketType:
    """Find the ticket type by id or name; ``None`` means the event's only ticket type."""
    types = TicketType.objects.filter(event=event)
    if ticket_type is None:
        candidates = list(types[:2])
        if len(candidates) != 1:
            raise TicketTypeNotFoundError(_("This event has several ticket types; please choose one."))
        return candidates[0]
    if isinstance(ticket_type, UUID):
        found = types.filter(pk=ticket_type).first()
    else:
        found = types.filter(name=ticket_type).first()
    if found is None:
        raise TicketTypeNotFoundError(_("Ticket type '{name}' not found.").format(name=ticket_type))
    return found


def ensure_bookable(event: Event) -> None:
    if event.status != Event.EventStatus.PUBLISHED:
        raise EventNotBookableError(_("This event is not open for booking ({status}).").format(status=event.status))
    if event.start <= timezone.now():
        raise EventNotBookableError(_("This event has already started."))


def reserve(event: Event, ticket_type: str | UUID | None, quantity: int) -> ReservationToken:
    """Claim ``quantity`` units of capacity.

    Raises:
        EventNotBookableError: The event is not published or has started.
        TicketTypeNotFoundError: No matching ticket type on the event.
        InsufficientCapacityError: Fewer than ``quantity`` units remain.
    """
    ensure_bookable(event)
    if not 1 <= quantity <= settings.MAX_TICKETS_PER_PURCHASE:
        raise DjangoValidationError(
            {"quantity": [_("Quantity must be between 1 and {limit}.").format(limit=settings.MAX_TICKETS_PER_PURCHASE)]}
        )
    resolved = resolve_ticket_type(event, ticket_type)

    updated = TicketType.objects.filter(pk=resolved.pk, available_tickets__gte=quantity).update(
        available_tickets=F("available_tickets") - quantity
    )
    if updated == 0:
        available = TicketType.objects.filter(pk=resolved.pk).values_list("available_tickets", flat=True).first() or 0
        logger.info(
            "inventory_reservation_rejected",
            event_id=str(event.pk),
            ticket_type_id=str(resolved.pk),
            requested=quantity,
            available=available,
        )
        raise InsufficientCapacityError(available=available, requested=quantity)

    logger.info(
        "inventory_reserved", event_id=str(event.pk), ticket_type_id=str(resolved.pk), quantity=quantity
    )
    return ReservationToken(event_id=event.pk, ticket_type_id=resolved.pk, quantity=quantity)


def release(token: ReservationToken) -> bool:
    """Give reserved capacity back; never pushes availability above capacity.

    Returns False (and logs) when the release would overflow capacity, which
    means the same reservation is being released twice.
    """
    updated = TicketType.objects.filter(
        pk=token.ticket_type_id, available_tickets__lte=F("capacity") - token.quantity
    ).update(available_tickets=F("available_tickets") + token.quantity)
    if updated == 0:
        logger.error(
            "inventory_release_overflow",
            ticket_type_id=str(token.ticket_type_id),
            quantity=token.quantity,
        )
        return False
    logger.info("inventory_released", ticket_type_id=str(token.ticket_type_id), quantity=token.quantity)
    return True


def resize(ticket_type: TicketType, capacity: int) -> TicketType:
    """Change capacity of a ticket type that has not sold anything yet."""
    updated = TicketType.objects.filter(pk=ticket_type.pk, available_tickets=F("capacity")).update(
        capacity=capacity, available_tickets=capacity
    )
    if updated == 0:
        raise InvalidStateTransitionError(_("Capacity cannot change after tickets have been sold."))
    ticket_type.refresh_from_db()
    return ticket_type


def tokens_for(items: t.Iterable[t.Any]) -> list[ReservationToken]:
    """Rebuild reservation tokens from booking line items."""
    return [
        ReservationToken(event_id=item.booking.event_id, ticket_type_id=item.ticket_type_id, quantity=item.quantity)
        for item in items
    ]
