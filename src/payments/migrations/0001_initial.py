import uuid
from decimal import Decimal

import django.core.validators
import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models

import common.utils
import events.models.event
import payments.models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("events", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Transaction",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("updated_at", models.DateTimeField(auto_now=True, db_index=True)),
                (
                    "reference",
                    models.CharField(
                        default=common.utils.generate_transaction_reference, editable=False, max_length=64, unique=True
                    ),
                ),
                (
                    "type",
                    models.CharField(
                        choices=[("event_booking", "Event booking"), ("service_fee", "Service fee")],
                        db_index=True,
                        default="event_booking",
                        max_length=20,
                    ),
                ),
                (
                    "amount",
                    models.DecimalField(
                        decimal_places=2,
                        max_digits=12,
                        validators=[django.core.validators.MinValueValidator(Decimal("0.01"))],
                    ),
                ),
                ("currency", models.CharField(default=events.models.event.default_currency, max_length=3)),
                ("email", models.EmailField(max_length=254)),
                (
                    "status",
                    models.CharField(
                        choices=[("pending", "Pending"), ("completed", "Completed"), ("failed", "Failed")],
                        db_index=True,
                        default="pending",
                        max_length=20,
                    ),
                ),
                ("failure_reason", models.CharField(blank=True, default="", max_length=255)),
                ("paid_at", models.DateTimeField(blank=True, null=True)),
                ("failed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "expires_at",
                    models.DateTimeField(db_index=True, default=payments.models.default_transaction_expiry),
                ),
                ("gateway", models.CharField(max_length=20)),
                ("gateway_reference", models.CharField(blank=True, db_index=True, default="", max_length=255)),
                ("authorization_url", models.URLField(blank=True, default="", max_length=1024)),
                ("access_code", models.CharField(blank=True, default="", max_length=255)),
                ("channel", models.CharField(blank=True, default="", max_length=50)),
                ("gateway_response", models.JSONField(blank=True, default=dict)),
                ("metadata", models.JSONField(blank=True, default=dict)),
                (
                    "refund_status",
                    models.CharField(
                        choices=[
                            ("none", "None"),
                            ("requested", "Requested"),
                            ("approved", "Approved"),
                            ("rejected", "Rejected"),
                            ("completed", "Completed"),
                        ],
                        db_index=True,
                        default="none",
                        max_length=20,
                    ),
                ),
                ("refund_amount", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ("refund_reason", models.TextField(blank=True, default="")),
                ("refund_rejection_reason", models.TextField(blank=True, default="")),
                ("refund_requested_at", models.DateTimeField(blank=True, null=True)),
                ("refund_processed_at", models.DateTimeField(blank=True, null=True)),
                ("refund_completed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "booking",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="transactions",
                        to="events.booking",
                    ),
                ),
                (
                    "event",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="transactions",
                        to="events.event",
                    ),
                ),
                (
                    "refund_processed_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="processed_refunds",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="transactions",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["status", "expires_at"], name="idx_txn_status_expiry"),
                    models.Index(fields=["type", "status"], name="idx_txn_type_status"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(
                            models.Q(("type", "event_booking"), _negated=True), ("booking__isnull", False), _connector="OR"
                        ),
                        name="booking_transaction_has_booking",
                    ),
                ],
            },
        ),
    ]
