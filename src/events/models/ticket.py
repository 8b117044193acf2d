import typing as t

from django.conf import settings
from django.db import models
from django.db.models import Q

from common.models import TimeStampedModel
from common.utils import generate_ticket_number

from .booking import Booking
from .event import Event, TicketType


class TicketQuerySet(models.QuerySet["Ticket"]):
    def active(self) -> t.Self:
        return self.filter(status=Ticket.TicketStatus.CONFIRMED)

    def with_event(self) -> t.Self:
        return self.select_related("event", "ticket_type", "booking")


class Ticket(TimeStampedModel):
    """A single admission, issued only after its booking is confirmed.

    Tickets are never deleted; cancellation, expiry and transfer are soft
    status changes.
    """

    class TicketStatus(models.TextChoices):
        CONFIRMED = "confirmed", "Confirmed"
        USED = "used", "Used"
        CANCELLED = "cancelled", "Cancelled"
        EXPIRED = "expired", "Expired"
        TRANSFERRED = "transferred", "Transferred"

    booking = models.ForeignKey(Booking, on_delete=models.PROTECT, related_name="tickets")
    event = models.ForeignKey(Event, on_delete=models.PROTECT, related_name="tickets")
    ticket_type = models.ForeignKey(TicketType, on_delete=models.PROTECT, related_name="tickets")
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="tickets")
    ticket_number = models.CharField(max_length=32, unique=True, default=generate_ticket_number, editable=False)
    status = models.CharField(
        max_length=20, choices=TicketStatus.choices, default=TicketStatus.CONFIRMED, db_index=True
    )
    # Position within the booking's mint generation; null for tickets issued by transfer
    sequence = models.PositiveIntegerField(null=True, blank=True, editable=False)
    price = models.DecimalField(max_digits=12, decimal_places=2)
    holder_name = models.CharField(max_length=255, blank=True, default="")

    checked_in_at = models.DateTimeField(null=True, blank=True, editable=False)
    checked_in_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="checked_in_tickets",
        editable=False,
    )
    cancelled_at = models.DateTimeField(null=True, blank=True)
    transferred_from = models.OneToOneField(
        "self", on_delete=models.PROTECT, null=True, blank=True, related_name="transferred_to"
    )

    objects = TicketQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["booking", "sequence"],
                condition=Q(sequence__isnull=False),
                name="unique_ticket_booking_sequence",
            ),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.ticket_number} ({self.status})"
