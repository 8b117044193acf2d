import typing as t
from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import F, Q, Sum
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from common.models import CounterFieldsMixin, TimeStampedModel

DEFAULT_TICKET_TYPE_NAME = "General Admission"


def default_currency() -> str:
    return t.cast(str, settings.DEFAULT_CURRENCY)


def default_refund_min_days() -> int:
    return t.cast(int, settings.REFUND_MIN_DAYS_BEFORE_EVENT)


class EventQuerySet(models.QuerySet["Event"]):
    def visible_to(self, user: t.Any) -> t.Self:
        """Everything but drafts, plus the caller's own drafts."""
        if not user.is_authenticated:
            return self.exclude(status=Event.EventStatus.DRAFT)
        return self.filter(~Q(status=Event.EventStatus.DRAFT) | Q(organizer=user))


class EventManager(models.Manager["Event"]):
    def get_queryset(self) -> EventQuerySet:
        return EventQuerySet(self.model, using=self._db)

    def visible_to(self, user: t.Any) -> EventQuerySet:
        return self.get_queryset().visible_to(user)


class Event(CounterFieldsMixin, TimeStampedModel):
    COUNTER_FIELDS = ("tickets_sold", "revenue")

    class EventStatus(models.TextChoices):
        DRAFT = "draft", "Draft"
        PUBLISHED = "published", "Published"
        CANCELLED = "cancelled", "Cancelled"
        COMPLETED = "completed", "Completed"
        POSTPONED = "postponed", "Postponed"

    class RefundPolicy(models.TextChoices):
        FULL = "full", "Full refund"
        PARTIAL = "partial", "Partial refund"
        NO_REFUND = "no_refund", "No refund"

    class ServiceFeeStatus(models.TextChoices):
        NOT_REQUIRED = "not_required", "Not required"
        PENDING = "pending", "Pending"
        PAID = "paid", "Paid"

    organizer = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="organized_events")
    title = models.CharField(max_length=255, db_index=True)
    description = models.TextField(blank=True, default="")
    venue = models.CharField(max_length=255, blank=True, default="")
    start = models.DateTimeField(db_index=True)
    end = models.DateTimeField(null=True, blank=True)
    status = models.CharField(
        choices=EventStatus.choices, max_length=20, default=EventStatus.DRAFT, db_index=True
    )
    published_at = models.DateTimeField(null=True, blank=True)
    currency = models.CharField(max_length=3, default=default_currency)

    refund_policy = models.CharField(choices=RefundPolicy.choices, max_length=20, default=RefundPolicy.PARTIAL)
    refund_min_days_before_event = models.PositiveSmallIntegerField(default=default_refund_min_days)

    # Upfront service fee for zero-price events
    requires_service_fee = models.BooleanField(default=False)
    service_fee_status = models.CharField(
        choices=ServiceFeeStatus.choices, max_length=20, default=ServiceFeeStatus.NOT_REQUIRED
    )
    service_fee_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    service_fee_reference = models.CharField(max_length=64, blank=True, default="")
    service_fee_transaction = models.OneToOneField(
        "payments.Transaction",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="materialized_event",
    )
    agreement = models.JSONField(default=dict, blank=True)

    # Only ever mutated through F() expressions
    tickets_sold = models.PositiveIntegerField(default=0, editable=False)
    revenue = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0"), editable=False)

    objects = EventManager()

    class Meta:
        ordering = ["start"]
        indexes = [
            models.Index(fields=["status", "start"], name="idx_event_status_start"),
            models.Index(fields=["organizer", "status"], name="idx_event_organizer_status"),
        ]

    def __str__(self) -> str:
        return self.title

    def save(self, *args: t.Any, **kwargs: t.Any) -> None:
        """Override save to set default end date if not provided."""
        if self.start and not self.end:
            self.end = self.start + timedelta(days=1)
        super().save(*args, **kwargs)

    def clean(self) -> None:
        """An event can only be published once its prerequisite payment is settled."""
        super().clean()
        if self.start and self.end and self.end < self.start:
            raise DjangoValidationError({"end": [_("The event cannot end before it starts.")]})
        if self.status == self.EventStatus.PUBLISHED and not self.is_service_fee_settled:
            raise DjangoValidationError(
                {"status": [_("The service fee must be paid before this event can be published.")]}
            )

    @property
    def is_service_fee_settled(self) -> bool:
        return not self.requires_service_fee or self.service_fee_status == self.ServiceFeeStatus.PAID

    @property
    def has_started(self) -> bool:
        return self.start <= timezone.now()

    def is_zero_price(self) -> bool:
        """True when no ticket type charges a price (the event needs an upfront service fee)."""
        return not self.ticket_types.filter(price__gt=0).exists()

    def total_available(self) -> int:
        return self.ticket_types.aggregate(total=Sum("available_tickets"))["total"] or 0

    def snapshot(self) -> dict[str, t.Any]:
        """Receipt-safe copy of the fields a booking must keep even if the event is edited later."""
        return {
            "id": str(self.pk),
            "title": self.title,
            "venue": self.venue,
            "start": self.start.isoformat(),
            "end": self.end.isoformat() if self.end else None,
            "refund_policy": self.refund_policy,
            "refund_min_days_before_event": self.refund_min_days_before_event,
            "currency": self.currency,
        }


class TicketType(CounterFieldsMixin, TimeStampedModel):
    """A priced category of admission with its own capacity pool.

    ``available_tickets`` is only ever changed by the inventory service through
    conditional ``F()`` updates; never assign to it on a loaded instance.
    """

    COUNTER_FIELDS = ("available_tickets",)

    event = models.ForeignKey(Event, on_delete=models.CASCADE, related_name="ticket_types")
    name = models.CharField(max_length=150, default=DEFAULT_TICKET_TYPE_NAME)
    description = models.TextField(blank=True, default="")
    price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0"), validators=[MinValueValidator(0)])
    capacity = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    available_tickets = models.PositiveIntegerField(blank=True)

    class Meta:
        ordering = ["price", "name"]
        constraints = [
            models.UniqueConstraint(fields=["event", "name"], name="unique_ticket_type_name_per_event"),
            models.CheckConstraint(
                condition=Q(available_tickets__gte=0) & Q(available_tickets__lte=F("capacity")),
                name="ticket_type_available_within_capacity",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.name} ({self.event_id})"

    @property
    def sold(self) -> int:
        return self.capacity - self.available_tickets

    def clean(self) -> None:
        """Capacity is frozen once the first ticket has been sold."""
        super().clean()
        if self._state.adding or self.pk is None:
            return
        stored = TicketType.objects.filter(pk=self.pk).values("capacity", "available_tickets").first()
        if stored and stored["capacity"] != self.capacity and stored["available_tickets"] < stored["capacity"]:
            raise DjangoValidationError({"capacity": [_("Capacity cannot change after tickets have been sold.")]})

    def save(self, *args: t.Any, **kwargs: t.Any) -> None:
        if self.available_tickets is None:
            self.available_tickets = self.capacity
        super().save(*args, **kwargs)
