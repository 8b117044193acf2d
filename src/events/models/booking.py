import typing as t
from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import Sum
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from common.models import TimeStampedModel
from common.utils import generate_order_number

from .event import Event, TicketType, default_currency

TOTAL_TOLERANCE = Decimal("0.01")


def default_booking_expiry() -> t.Any:
    return timezone.now() + timedelta(hours=settings.BOOKING_EXPIRY_HOURS)


class BookingQuerySet(models.QuerySet["Booking"]):
    def pending(self) -> t.Self:
        return self.filter(status=Booking.BookingStatus.PENDING)

    def expired_pending(self) -> t.Self:
        """Pending bookings whose reservation window has elapsed."""
        return self.pending().filter(expires_at__lt=timezone.now())

    def for_user(self, user: t.Any) -> t.Self:
        return self.filter(user=user)


class Booking(TimeStampedModel):
    """A purchase order grouping one or more ticket-type line items.

    Status changes go through ``booking_service`` conditional updates; the
    pricing columns are validated on every ``save()``.
    """

    class BookingStatus(models.TextChoices):
        PENDING = "pending", "Pending"
        CONFIRMED = "confirmed", "Confirmed"
        CANCELLED = "cancelled", "Cancelled"
        REFUNDED = "refunded", "Refunded"
        EXPIRED = "expired", "Expired"

    class PaymentStatus(models.TextChoices):
        PENDING = "pending", "Pending"
        PAID = "paid", "Paid"
        NOT_REQUIRED = "not_required", "Not required"
        FAILED = "failed", "Failed"
        REFUND_PENDING = "refund_pending", "Refund pending"
        REFUNDED = "refunded", "Refunded"

    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="bookings")
    event = models.ForeignKey(Event, on_delete=models.PROTECT, related_name="bookings")
    order_number = models.CharField(max_length=32, unique=True, default=generate_order_number, editable=False)
    status = models.CharField(
        max_length=20, choices=BookingStatus.choices, default=BookingStatus.PENDING, db_index=True
    )
    payment_status = models.CharField(max_length=20, choices=PaymentStatus.choices, default=PaymentStatus.PENDING)

    subtotal = models.DecimalField(max_digits=12, decimal_places=2, validators=[MinValueValidator(0)])
    service_fee = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0"))
    tax = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0"))
    discount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0"))
    total = models.DecimalField(max_digits=12, decimal_places=2, validators=[MinValueValidator(0)])
    currency = models.CharField(max_length=3, default=default_currency)

    event_snapshot = models.JSONField(default=dict)
    customer_info = models.JSONField(default=dict)

    expires_at = models.DateTimeField(default=default_booking_expiry, db_index=True)
    confirmed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancellation_reason = models.CharField(max_length=255, blank=True, default="")
    refund_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0"))

    # Mint generation: how many sequenced tickets have been issued so far
    tickets_minted = models.PositiveIntegerField(default=0)

    objects = BookingQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]
        indexes = [models.Index(fields=["status", "expires_at"], name="idx_booking_status_expiry")]

    def __str__(self) -> str:
        return self.order_number

    def clean(self) -> None:
        """Total must equal subtotal + fee + tax - discount."""
        super().clean()
        if None in (self.subtotal, self.service_fee, self.tax, self.discount, self.total):
            return
        expected = self.subtotal + self.service_fee + self.tax - self.discount
        if abs(self.total - expected) > TOTAL_TOLERANCE:
            raise DjangoValidationError(
                {"total": [_("Total does not match subtotal + fees + tax - discount ({expected}).").format(
                    expected=expected
                )]}
            )

    @property
    def total_tickets(self) -> int:
        return self.items.aggregate(total=Sum("quantity"))["total"] or 0

    def has_expired(self) -> bool:
        return self.status == self.BookingStatus.PENDING and self.expires_at < timezone.now()


class BookingItem(TimeStampedModel):
    """One ticket-type line of a booking, priced at purchase time."""

    booking = models.ForeignKey(Booking, on_delete=models.CASCADE, related_name="items")
    ticket_type = models.ForeignKey(TicketType, on_delete=models.PROTECT, related_name="booking_items")
    ticket_type_name = models.CharField(max_length=150)
    quantity = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    unit_price = models.DecimalField(max_digits=12, decimal_places=2)
    subtotal = models.DecimalField(max_digits=12, decimal_places=2)

    class Meta:
        ordering = ["created_at"]
        constraints = [
            models.UniqueConstraint(fields=["booking", "ticket_type"], name="unique_booking_item_ticket_type"),
        ]

    def __str__(self) -> str:
        return f"{self.quantity} x {self.ticket_type_name}"
