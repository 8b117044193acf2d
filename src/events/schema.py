import typing as t
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from django.utils import timezone
from ninja import Field, ModelSchema, Schema
from pydantic import AwareDatetime, EmailStr, model_validator

from common.schema import OneToOneFiftyString, OneToTwoFiftyFiveString, StrippedString

from .models import DEFAULT_TICKET_TYPE_NAME, Booking, BookingItem, Event, Ticket, TicketType

# Legacy single price/capacity events default to this many seats
DEFAULT_LEGACY_CAPACITY = 100


class TicketTypeCreateSchema(Schema):
    name: OneToOneFiftyString = DEFAULT_TICKET_TYPE_NAME
    description: StrippedString = ""
    price: Decimal = Field(default=Decimal("0"), ge=0, max_digits=12, decimal_places=2)
    capacity: int = Field(..., ge=1)


class EventCreateSchema(Schema):
    """An event description, either created directly or carried as a draft in payment metadata."""

    title: OneToTwoFiftyFiveString
    description: StrippedString = ""
    venue: StrippedString = ""
    start: AwareDatetime
    end: AwareDatetime | None = None
    refund_policy: Event.RefundPolicy = Event.RefundPolicy.PARTIAL
    refund_min_days_before_event: int | None = Field(None, ge=0, le=365)
    ticket_types: list[TicketTypeCreateSchema] = Field(default_factory=list)
    # Legacy single price/capacity pair, used when no ticket types are given
    price: Decimal | None = Field(None, ge=0, max_digits=12, decimal_places=2)
    capacity: int | None = Field(None, ge=1)

    @model_validator(mode="after")
    def validate_schedule_and_types(self) -> t.Self:
        """Reject past events, inverted schedules and duplicate ticket type names."""
        if self.start <= timezone.now():
            raise ValueError("The event must start in the future.")
        if self.end is not None and self.end < self.start:
            raise ValueError("The event cannot end before it starts.")
        names = [ticket_type.name for ticket_type in self.ticket_types]
        if len(names) != len(set(names)):
            raise ValueError("Ticket type names must be unique within an event.")
        return self

    def resolved_ticket_types(self) -> list[TicketTypeCreateSchema]:
        if self.ticket_types:
            return self.ticket_types
        return [
            TicketTypeCreateSchema(
                price=self.price if self.price is not None else Decimal("0"),
                capacity=self.capacity or DEFAULT_LEGACY_CAPACITY,
            )
        ]


class TicketTypeSchema(ModelSchema):
    class Meta:
        model = TicketType
        fields = ["id", "name", "description", "price", "capacity", "available_tickets"]


class EventSchema(ModelSchema):
    organizer_id: UUID
    status: Event.EventStatus
    ticket_types: list[TicketTypeSchema]

    class Meta:
        model = Event
        fields = [
            "id",
            "title",
            "description",
            "venue",
            "start",
            "end",
            "status",
            "published_at",
            "currency",
            "refund_policy",
            "refund_min_days_before_event",
            "requires_service_fee",
            "service_fee_status",
            "tickets_sold",
        ]

    @staticmethod
    def resolve_ticket_types(obj: Event) -> list[TicketType]:
        return list(obj.ticket_types.all())


class PurchaseSchema(Schema):
    event_id: UUID
    ticket_type: OneToOneFiftyString | None = None
    quantity: int = Field(1, ge=1)


class PurchaseResponseSchema(Schema):
    booking_id: UUID
    order_number: str
    status: Booking.BookingStatus
    ticket_ids: list[UUID]
    total_amount: Decimal
    currency: str
    expires_at: datetime


class BookingItemSchema(ModelSchema):
    class Meta:
        model = BookingItem
        fields = ["ticket_type", "ticket_type_name", "quantity", "unit_price", "subtotal"]


class TicketSchema(ModelSchema):
    event_id: UUID
    booking_id: UUID
    ticket_type_name: str
    status: Ticket.TicketStatus

    class Meta:
        model = Ticket
        fields = [
            "id",
            "ticket_number",
            "status",
            "price",
            "holder_name",
            "checked_in_at",
            "created_at",
        ]

    @staticmethod
    def resolve_ticket_type_name(obj: Ticket) -> str:
        return obj.ticket_type.name


class BookingSchema(ModelSchema):
    event_id: UUID
    status: Booking.BookingStatus
    payment_status: Booking.PaymentStatus
    items: list[BookingItemSchema]
    tickets: list[TicketSchema]

    class Meta:
        model = Booking
        fields = [
            "id",
            "order_number",
            "status",
            "payment_status",
            "subtotal",
            "service_fee",
            "tax",
            "discount",
            "total",
            "currency",
            "event_snapshot",
            "expires_at",
            "confirmed_at",
            "cancelled_at",
            "refund_amount",
        ]

    @staticmethod
    def resolve_items(obj: Booking) -> list[BookingItem]:
        return list(obj.items.all())

    @staticmethod
    def resolve_tickets(obj: Booking) -> list[Ticket]:
        return list(obj.tickets.select_related("ticket_type"))


class TicketTransferSchema(Schema):
    email: EmailStr


class CancellationResponseSchema(Schema):
    booking_id: UUID
    booking_status: Booking.BookingStatus
    cancelled_ticket_ids: list[UUID]
    refund_amount: Decimal
