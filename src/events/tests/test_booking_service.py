"""Tests for the booking state machine."""

from datetime import timedelta
from decimal import Decimal

import pytest
from django.core.exceptions import ValidationError as DjangoValidationError
from django.utils import timezone
from freezegun import freeze_time

from accounts.models import BoxOfficeUser
from events.exceptions import (
    CancellationWindowClosedError,
    InsufficientCapacityError,
    InvalidStateTransitionError,
)
from events.models import Booking, Event, Ticket, TicketType
from events.service import booking_service
from events.service.booking_service import PurchaseLine

pytestmark = pytest.mark.django_db


def _confirmed(booking: Booking) -> Booking:
    booking_service.confirm_booking(booking)
    booking.refresh_from_db()
    return booking


class TestCreateBooking:
    def test_pending_booking_with_priced_lines(self, booking: Booking, ticket_type: TicketType) -> None:
        assert booking.status == Booking.BookingStatus.PENDING
        assert booking.payment_status == Booking.PaymentStatus.PENDING
        assert booking.subtotal == Decimal("2000.00")
        assert booking.service_fee == Decimal("60.00")
        assert booking.total == Decimal("2060.00")
        assert booking.expires_at > timezone.now()
        assert booking.event_snapshot["title"] == "Summer Concert"
        assert booking.event_snapshot["refund_policy"] == Event.RefundPolicy.FULL

        item = booking.items.get()
        assert item.ticket_type_name == "Regular"
        assert item.quantity == 2
        assert item.unit_price == Decimal("1000.00")

        ticket_type.refresh_from_db()
        assert ticket_type.available_tickets == 8
        assert not booking.tickets.exists()

    def test_snapshot_survives_event_edits(self, booking: Booking, event: Event) -> None:
        Event.objects.filter(pk=event.pk).update(title="Renamed", refund_policy=Event.RefundPolicy.NO_REFUND)

        booking.refresh_from_db()
        assert booking.event_snapshot["title"] == "Summer Concert"
        assert booking.event_snapshot["refund_policy"] == Event.RefundPolicy.FULL

    def test_failed_line_rolls_back_earlier_reservations(
        self, user: BoxOfficeUser, event: Event, ticket_type: TicketType
    ) -> None:
        TicketType.objects.create(event=event, name="VIP", price=Decimal("5000.00"), capacity=1)

        with pytest.raises(InsufficientCapacityError):
            booking_service.create_booking(
                user, event, [PurchaseLine(ticket_type="Regular", quantity=3), PurchaseLine("VIP", 2)]
            )

        ticket_type.refresh_from_db()
        assert ticket_type.available_tickets == 10
        assert not Booking.objects.exists()

    def test_empty_order_is_rejected(self, user: BoxOfficeUser, event: Event) -> None:
        with pytest.raises(DjangoValidationError):
            booking_service.create_booking(user, event, [])

    def test_zero_total_is_confirmed_immediately(self, user: BoxOfficeUser, event: Event) -> None:
        TicketType.objects.create(event=event, name="Free", price=Decimal("0"), capacity=50)

        booking = booking_service.create_booking(user, event, [PurchaseLine(ticket_type="Free", quantity=3)])

        assert booking.status == Booking.BookingStatus.CONFIRMED
        assert booking.payment_status == Booking.PaymentStatus.NOT_REQUIRED
        assert booking.tickets.count() == 3


class TestConfirmBooking:
    def test_confirm_mints_one_ticket_per_unit(self, booking: Booking, event: Event) -> None:
        won = booking_service.confirm_booking(booking)

        booking.refresh_from_db()
        assert won is True
        assert booking.status == Booking.BookingStatus.CONFIRMED
        assert booking.payment_status == Booking.PaymentStatus.PAID
        assert booking.confirmed_at is not None
        assert booking.tickets_minted == 2
        tickets = list(booking.tickets.order_by("sequence"))
        assert [t.sequence for t in tickets] == [0, 1]
        assert all(t.status == Ticket.TicketStatus.CONFIRMED for t in tickets)
        assert len({t.ticket_number for t in tickets}) == 2

        event.refresh_from_db()
        assert event.tickets_sold == 2
        assert event.revenue == Decimal("2000.00")

    def test_second_confirm_is_a_no_op(self, booking: Booking, event: Event) -> None:
        booking_service.confirm_booking(booking)

        won = booking_service.confirm_booking(booking)

        assert won is False
        assert booking.tickets.count() == 2
        event.refresh_from_db()
        assert event.tickets_sold == 2

    def test_minting_resumes_after_partial_failure(self, booking: Booking) -> None:
        booking = _confirmed(booking)
        booking.tickets.filter(sequence=1).delete()

        created = booking_service.mint_tickets(booking)

        assert [t.sequence for t in created] == [1]
        assert booking.tickets.count() == 2

    def test_expired_booking_cannot_be_confirmed(self, booking: Booking) -> None:
        Booking.objects.filter(pk=booking.pk).update(status=Booking.BookingStatus.EXPIRED)

        with pytest.raises(InvalidStateTransitionError):
            booking_service.confirm_booking(booking)

        assert not booking.tickets.exists()


class TestExpireAndFail:
    def test_expire_only_after_the_window(self, booking: Booking, ticket_type: TicketType) -> None:
        assert booking_service.expire_booking(booking) is False

        with freeze_time(booking.expires_at + timedelta(minutes=1)):
            assert booking_service.expire_booking(booking) is True
            assert booking_service.expire_booking(booking) is False

        booking.refresh_from_db()
        assert booking.status == Booking.BookingStatus.EXPIRED
        ticket_type.refresh_from_db()
        assert ticket_type.available_tickets == 10

    def test_fail_releases_inventory(self, booking: Booking, ticket_type: TicketType) -> None:
        assert booking_service.fail_booking(booking, "Declined") is True

        booking.refresh_from_db()
        assert booking.status == Booking.BookingStatus.CANCELLED
        assert booking.payment_status == Booking.PaymentStatus.FAILED
        assert booking.cancellation_reason == "Declined"
        ticket_type.refresh_from_db()
        assert ticket_type.available_tickets == 10

    def test_fail_after_confirmation_changes_nothing(self, booking: Booking) -> None:
        booking = _confirmed(booking)

        assert booking_service.fail_booking(booking, "late failure") is False

        booking.refresh_from_db()
        assert booking.status == Booking.BookingStatus.CONFIRMED


class TestCancellation:
    def test_cancel_single_ticket(self, booking: Booking, user: BoxOfficeUser, ticket_type: TicketType) -> None:
        booking = _confirmed(booking)
        ticket = booking.tickets.get(sequence=0)

        result = booking_service.cancel_ticket(ticket, user)

        ticket.refresh_from_db()
        assert ticket.status == Ticket.TicketStatus.CANCELLED
        assert result.refund_amount == Decimal("1030.00")
        assert result.booking_cancelled is False
        assert booking.status == Booking.BookingStatus.CONFIRMED
        ticket_type.refresh_from_db()
        assert ticket_type.available_tickets == 9

    def test_cancelling_last_ticket_cancels_booking(self, booking: Booking, user: BoxOfficeUser) -> None:
        booking = _confirmed(booking)
        first, second = booking.tickets.order_by("sequence")

        booking_service.cancel_ticket(first, user)
        result = booking_service.cancel_ticket(second, user)

        booking.refresh_from_db()
        assert result.booking_cancelled is True
        assert booking.status == Booking.BookingStatus.CANCELLED
        assert booking.refund_amount == Decimal("2060.00")

    def test_cancel_booking(self, booking: Booking, user: BoxOfficeUser, event: Event) -> None:
        booking = _confirmed(booking)

        result = booking_service.cancel_booking(booking, user)

        assert result.booking_cancelled is True
        assert len(result.cancelled_tickets) == 2
        assert result.refund_amount == Decimal("2060.00")
        event.refresh_from_db()
        assert event.tickets_sold == 0
        assert event.revenue == Decimal("0.00")

    def test_cannot_cancel_inside_cutoff(self, booking: Booking, user: BoxOfficeUser, event: Event) -> None:
        booking = _confirmed(booking)

        with freeze_time(event.start - timedelta(hours=12)):
            with pytest.raises(CancellationWindowClosedError):
                booking_service.cancel_booking(booking, user)

        assert booking.tickets.active().count() == 2

    def test_cancel_inside_refund_window_refunds_nothing(
        self, booking: Booking, user: BoxOfficeUser, event: Event
    ) -> None:
        booking = _confirmed(booking)

        with freeze_time(event.start - timedelta(days=3)):
            result = booking_service.cancel_booking(booking, user)

        assert result.booking_cancelled is True
        assert result.refund_amount == Decimal("0.00")

    def test_used_ticket_cannot_be_cancelled(self, booking: Booking, user: BoxOfficeUser) -> None:
        booking = _confirmed(booking)
        ticket = booking.tickets.get(sequence=0)
        Ticket.objects.filter(pk=ticket.pk).update(status=Ticket.TicketStatus.USED)
        ticket.refresh_from_db()

        with pytest.raises(InvalidStateTransitionError):
            booking_service.cancel_ticket(ticket, user)

    def test_pending_booking_cannot_be_cancelled(self, booking: Booking, user: BoxOfficeUser) -> None:
        with pytest.raises(InvalidStateTransitionError):
            booking_service.cancel_booking(booking, user)


class TestRefundTransitions:
    def test_release_for_refund_keeps_booking_confirmed(self, booking: Booking, ticket_type: TicketType) -> None:
        booking = _confirmed(booking)

        result = booking_service.release_for_refund(booking)

        assert len(result.cancelled_tickets) == 2
        assert booking.status == Booking.BookingStatus.CONFIRMED
        assert booking.payment_status == Booking.PaymentStatus.REFUND_PENDING
        ticket_type.refresh_from_db()
        assert ticket_type.available_tickets == 10

    def test_mark_refunded(self, booking: Booking) -> None:
        booking = _confirmed(booking)
        booking_service.release_for_refund(booking)

        assert booking_service.mark_refunded(booking) is True

        assert booking.status == Booking.BookingStatus.REFUNDED
        assert booking.payment_status == Booking.PaymentStatus.REFUNDED

    def test_mark_refunded_on_cancelled_booking_only_touches_payment(
        self, booking: Booking, user: BoxOfficeUser
    ) -> None:
        booking = _confirmed(booking)
        booking_service.cancel_booking(booking, user)

        assert booking_service.mark_refunded(booking) is False

        assert booking.status == Booking.BookingStatus.CANCELLED
        assert booking.payment_status == Booking.PaymentStatus.REFUNDED
