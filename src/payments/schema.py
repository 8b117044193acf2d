import typing as t
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from django.conf import settings
from ninja import Field, ModelSchema, Schema
from pydantic import EmailStr, field_validator, model_validator

from common.schema import StrippedString
from events.models import Booking
from events.schema import EventCreateSchema

from .models import Transaction
from .service.service_fee import AgreementType


class TransactionInitializeSchema(Schema):
    booking_id: UUID
    amount: Decimal | None = Field(None, gt=0, max_digits=12, decimal_places=2)
    email: EmailStr | None = None
    callback_url: str | None = None


class TransactionInitializeResponseSchema(Schema):
    reference: str
    payment_url: str
    access_code: str
    amount: Decimal
    currency: str
    expires_at: datetime

    @staticmethod
    def resolve_payment_url(obj: Transaction) -> str:
        return obj.authorization_url


class TransactionSchema(ModelSchema):
    user_id: UUID
    booking_id: UUID | None = None
    event_id: UUID | None = None
    type: Transaction.Type
    status: Transaction.Status
    refund_status: Transaction.RefundStatus

    class Meta:
        model = Transaction
        fields = [
            "id",
            "reference",
            "type",
            "amount",
            "currency",
            "email",
            "status",
            "failure_reason",
            "paid_at",
            "failed_at",
            "expires_at",
            "gateway",
            "channel",
            "refund_status",
            "refund_amount",
            "refund_reason",
            "refund_rejection_reason",
            "refund_requested_at",
            "refund_processed_at",
            "refund_completed_at",
            "created_at",
        ]


class BookingStateSchema(Schema):
    id: UUID
    order_number: str
    status: Booking.BookingStatus
    payment_status: Booking.PaymentStatus
    ticket_ids: list[UUID]

    @staticmethod
    def resolve_ticket_ids(obj: Booking) -> list[UUID]:
        return list(obj.tickets.values_list("id", flat=True))


class VerifyResponseSchema(Schema):
    transaction: TransactionSchema
    booking: BookingStateSchema | None = None
    event_id: UUID | None = None


class AgreementSchema(Schema):
    type: AgreementType = AgreementType.PERCENTAGE
    amount: Decimal | None = Field(None, gt=0, max_digits=12, decimal_places=2)
    accepted_terms: bool
    agreement_version: str = "1.0"

    @field_validator("accepted_terms")
    @classmethod
    def terms_must_be_accepted(cls, value: bool) -> bool:
        if not value:
            raise ValueError("The service agreement terms must be accepted.")
        return value


class ServiceFeeQuoteSchema(Schema):
    attendance_range: str
    base_fee: Decimal
    agreement_type: AgreementType
    amount: Decimal
    currency: str


class ServiceFeeInitializeSchema(Schema):
    """Draft event plus the agreement its service fee is priced under.

    The fee amount is always computed server side.
    """

    event: EventCreateSchema
    attendance_range: str
    agreement: AgreementSchema
    email: EmailStr | None = None
    callback_url: str | None = None

    @model_validator(mode="after")
    def validate_attendance_range(self) -> t.Self:
        if self.attendance_range not in settings.SERVICE_FEE_ATTENDANCE_RANGES:
            raise ValueError(f"Unknown attendance range: {self.attendance_range}.")
        return self

    @model_validator(mode="after")
    def validate_free_event(self) -> t.Self:
        """Paid events are published directly; the service fee only gates free ones."""
        if any(ticket_type.price > 0 for ticket_type in self.event.resolved_ticket_types()):
            raise ValueError("The service fee only applies to free events.")
        return self


class RefundRequestSchema(Schema):
    reason: StrippedString = Field("", max_length=1000)


class RefundProcessSchema(Schema):
    action: t.Literal["approve", "reject"]
    reason: StrippedString = Field("", max_length=1000)

    @model_validator(mode="after")
    def rejection_needs_reason(self) -> t.Self:
        if self.action == "reject" and not self.reason:
            raise ValueError("A reason is required to reject a refund.")
        return self
