import typing as t
from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone

from common.models import TimeStampedModel
from common.utils import generate_transaction_reference
from events.models.event import default_currency


def default_transaction_expiry() -> t.Any:
    return timezone.now() + timedelta(minutes=settings.PAYMENT_DEFAULT_EXPIRY_MINUTES)


class TransactionQuerySet(models.QuerySet["Transaction"]):
    def pending(self) -> t.Self:
        return self.filter(status=Transaction.Status.PENDING)

    def stale(self) -> t.Self:
        """Pending transactions past their expiry, due for re-verification."""
        return self.pending().filter(expires_at__lt=timezone.now())

    def for_user(self, user: t.Any) -> t.Self:
        return self.filter(user=user)


class Transaction(TimeStampedModel):
    """One payment attempt against the external gateway.

    ``status`` leaves PENDING exactly once, through the guarded update in
    ``payments.service.reconciliation.finalize``. ``refund_status`` runs its own
    sub-lifecycle: none -> requested -> approved | rejected, approved -> completed.
    """

    class Type(models.TextChoices):
        EVENT_BOOKING = "event_booking", "Event booking"
        SERVICE_FEE = "service_fee", "Service fee"

    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        COMPLETED = "completed", "Completed"
        FAILED = "failed", "Failed"

    class RefundStatus(models.TextChoices):
        NONE = "none", "None"
        REQUESTED = "requested", "Requested"
        APPROVED = "approved", "Approved"
        REJECTED = "rejected", "Rejected"
        COMPLETED = "completed", "Completed"

    reference = models.CharField(
        max_length=64, unique=True, default=generate_transaction_reference, editable=False
    )
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="transactions")
    type = models.CharField(max_length=20, choices=Type.choices, default=Type.EVENT_BOOKING, db_index=True)
    booking = models.ForeignKey(
        "events.Booking", on_delete=models.PROTECT, null=True, blank=True, related_name="transactions"
    )
    # For service-fee transactions this stays empty until the draft event is materialized
    event = models.ForeignKey(
        "events.Event", on_delete=models.PROTECT, null=True, blank=True, related_name="transactions"
    )
    amount = models.DecimalField(max_digits=12, decimal_places=2, validators=[MinValueValidator(Decimal("0.01"))])
    currency = models.CharField(max_length=3, default=default_currency)
    email = models.EmailField()

    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING, db_index=True)
    failure_reason = models.CharField(max_length=255, blank=True, default="")
    paid_at = models.DateTimeField(null=True, blank=True)
    failed_at = models.DateTimeField(null=True, blank=True)
    expires_at = models.DateTimeField(default=default_transaction_expiry, db_index=True)

    gateway = models.CharField(max_length=20)
    gateway_reference = models.CharField(max_length=255, blank=True, default="", db_index=True)
    authorization_url = models.URLField(max_length=1024, blank=True, default="")
    access_code = models.CharField(max_length=255, blank=True, default="")
    channel = models.CharField(max_length=50, blank=True, default="")
    gateway_response = models.JSONField(default=dict, blank=True)
    metadata = models.JSONField(default=dict, blank=True)

    refund_status = models.CharField(
        max_length=20, choices=RefundStatus.choices, default=RefundStatus.NONE, db_index=True
    )
    refund_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    refund_reason = models.TextField(blank=True, default="")
    refund_rejection_reason = models.TextField(blank=True, default="")
    refund_requested_at = models.DateTimeField(null=True, blank=True)
    refund_processed_at = models.DateTimeField(null=True, blank=True)
    refund_completed_at = models.DateTimeField(null=True, blank=True)
    refund_processed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="processed_refunds",
    )

    objects = TransactionQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status", "expires_at"], name="idx_txn_status_expiry"),
            models.Index(fields=["type", "status"], name="idx_txn_type_status"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=~models.Q(type="event_booking") | models.Q(booking__isnull=False),
                name="booking_transaction_has_booking",
            ),
        ]

    def __str__(self) -> str:
        return self.reference

    @property
    def is_terminal(self) -> bool:
        return self.status != self.Status.PENDING

    @property
    def is_draft(self) -> bool:
        return bool(self.metadata.get("is_draft"))

    @property
    def amount_minor(self) -> int:
        """Amount in the currency's minor unit (kobo, cents)."""
        return int((self.amount * 100).to_integral_value())
