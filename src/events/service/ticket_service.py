from uuid import UUID

import structlog
from django.db import transaction
from django.shortcuts import get_object_or_404
from django.utils import timezone
from django.utils.translation import gettext_lazy as _
from ninja.errors import HttpError

from accounts.models import BoxOfficeUser
from events.exceptions import InvalidStateTransitionError
from events.models import Event, Ticket
from notifications.enums import NotificationType
from notifications.service import publish

logger = structlog.get_logger(__name__)


def can_manage_event(event: Event, user: BoxOfficeUser) -> bool:
    return bool(user.is_staff or user.is_superuser or event.organizer_id == user.pk)


def check_in_ticket(ticket_id: UUID, checked_in_by: BoxOfficeUser) -> Ticket:
    """Validate a ticket at the door, marking it used exactly once."""
    ticket = get_object_or_404(Ticket.objects.select_related("event", "user", "ticket_type"), pk=ticket_id)
    event = ticket.event

    if not can_manage_event(event, checked_in_by):
        raise HttpError(403, str(_("Only the event organizer can validate tickets.")))

    if event.status in (Event.EventStatus.CANCELLED, Event.EventStatus.DRAFT):
        raise HttpError(400, str(_("Check-in is not open for this event.")))

    now = timezone.now()
    updated = Ticket.objects.filter(pk=ticket.pk, status=Ticket.TicketStatus.CONFIRMED).update(
        status=Ticket.TicketStatus.USED, checked_in_at=now, checked_in_by=checked_in_by, updated_at=now
    )
    if not updated:
        ticket.refresh_from_db()
        if ticket.status == Ticket.TicketStatus.USED:
            error_message = str(_("This ticket has already been checked in."))
        elif ticket.status == Ticket.TicketStatus.CANCELLED:
            error_message = str(_("This ticket has been cancelled."))
        elif ticket.status == Ticket.TicketStatus.TRANSFERRED:
            error_message = str(_("This ticket has been transferred to another attendee."))
        else:
            error_message = str(_("Invalid ticket status: {status}")).format(status=ticket.status)
        raise HttpError(400, error_message)

    ticket.refresh_from_db()
    logger.info("ticket_checked_in", ticket_id=str(ticket.pk), event_id=str(event.pk), by=str(checked_in_by.pk))
    publish(NotificationType.TICKET_CHECKED_IN, user_id=ticket.user_id, ticket_id=ticket.pk)
    return ticket


@transaction.atomic
def transfer_ticket(ticket: Ticket, sender: BoxOfficeUser, recipient: BoxOfficeUser) -> Ticket:
    """Hand a confirmed ticket to another user.

    The original is marked ``transferred`` and a fresh ticket number is issued
    to the recipient, so a screenshot of the old ticket no longer gets anyone in.
    """
    if recipient.pk == sender.pk:
        raise HttpError(400, str(_("You cannot transfer a ticket to yourself.")))
    if ticket.event.has_started:
        raise HttpError(400, str(_("Tickets cannot be transferred after the event has started.")))

    now = timezone.now()
    updated = Ticket.objects.filter(pk=ticket.pk, status=Ticket.TicketStatus.CONFIRMED).update(
        status=Ticket.TicketStatus.TRANSFERRED, updated_at=now
    )
    if not updated:
        raise InvalidStateTransitionError(_("Only confirmed tickets can be transferred."))

    new_ticket = Ticket.objects.create(
        booking_id=ticket.booking_id,
        event_id=ticket.event_id,
        ticket_type_id=ticket.ticket_type_id,
        user=recipient,
        price=ticket.price,
        holder_name=recipient.get_display_name(),
        transferred_from=ticket,
    )
    logger.info(
        "ticket_transferred",
        ticket_id=str(ticket.pk),
        new_ticket_id=str(new_ticket.pk),
        sender_id=str(sender.pk),
        recipient_id=str(recipient.pk),
    )
    publish(NotificationType.TICKET_TRANSFERRED, user_id=recipient.pk, ticket_id=new_ticket.pk)
    return new_ticket
