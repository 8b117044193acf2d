"""Tests for the ticket purchase and lifecycle endpoints."""

import uuid

import orjson
import pytest
from django.test.client import Client
from django.urls import reverse

from accounts.models import BoxOfficeUser
from events.models import Booking, Event, Ticket, TicketType
from events.service import booking_service

pytestmark = pytest.mark.django_db


def _post(client: Client, url: str, payload: dict[str, object] | None = None) -> object:
    return client.post(url, data=orjson.dumps(payload or {}), content_type="application/json")


class TestPurchase:
    def test_purchase_opens_pending_booking(
        self, user_client: Client, event: Event, ticket_type: TicketType
    ) -> None:
        response = _post(
            user_client,
            reverse("api:purchase_tickets"),
            {"event_id": str(event.pk), "ticket_type": "Regular", "quantity": 2},
        )

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == Booking.BookingStatus.PENDING
        assert data["ticket_ids"] == []
        assert data["total_amount"] == "2060.00"
        assert data["currency"] == "NGN"
        ticket_type.refresh_from_db()
        assert ticket_type.available_tickets == 8

    def test_ticket_type_may_be_omitted_for_single_type_events(
        self, user_client: Client, event: Event, ticket_type: TicketType
    ) -> None:
        response = _post(user_client, reverse("api:purchase_tickets"), {"event_id": str(event.pk)})

        assert response.status_code == 201
        assert Booking.objects.get().items.get().ticket_type == ticket_type

    def test_sold_out_returns_409(
        self, user_client: Client, other_client: Client, event: Event, last_seat: TicketType
    ) -> None:
        payload = {"event_id": str(event.pk), "ticket_type": "Regular", "quantity": 1}
        assert _post(user_client, reverse("api:purchase_tickets"), payload).status_code == 201

        response = _post(other_client, reverse("api:purchase_tickets"), payload)

        assert response.status_code == 409
        assert response.json()["code"] == "insufficient_capacity"
        assert response.json()["available"] == 0
        assert Booking.objects.count() == 1

    def test_unknown_event_returns_404(self, user_client: Client) -> None:
        response = _post(user_client, reverse("api:purchase_tickets"), {"event_id": str(uuid.uuid4())})

        assert response.status_code == 404

    def test_unknown_ticket_type_returns_404(
        self, user_client: Client, event: Event, ticket_type: TicketType
    ) -> None:
        response = _post(
            user_client, reverse("api:purchase_tickets"), {"event_id": str(event.pk), "ticket_type": "Balcony"}
        )

        assert response.status_code == 404
        assert response.json()["code"] == "not_found"

    def test_anonymous_cannot_purchase(self, client: Client, event: Event, ticket_type: TicketType) -> None:
        response = _post(client, reverse("api:purchase_tickets"), {"event_id": str(event.pk)})

        assert response.status_code == 401


class TestTicketLifecycle:
    @pytest.fixture
    def ticket(self, booking: Booking) -> Ticket:
        booking_service.confirm_booking(booking)
        return booking.tickets.get(sequence=0)

    def test_my_tickets(self, user_client: Client, ticket: Ticket) -> None:
        response = user_client.get(reverse("api:my_tickets"))

        assert response.status_code == 200
        assert response.json()["count"] == 2

    def test_organizer_validates_ticket(self, organizer_client: Client, ticket: Ticket) -> None:
        url = reverse("api:validate_ticket", kwargs={"ticket_id": ticket.pk})

        first = organizer_client.post(url)
        second = organizer_client.post(url)

        assert first.status_code == 200
        assert first.json()["status"] == Ticket.TicketStatus.USED
        assert second.status_code == 400

    def test_holder_cannot_validate(self, user_client: Client, ticket: Ticket) -> None:
        response = user_client.post(reverse("api:validate_ticket", kwargs={"ticket_id": ticket.pk}))

        assert response.status_code == 403

    def test_cancel_ticket(self, user_client: Client, ticket: Ticket) -> None:
        response = user_client.post(reverse("api:cancel_ticket", kwargs={"ticket_id": ticket.pk}))

        assert response.status_code == 200
        data = response.json()
        assert data["cancelled_ticket_ids"] == [str(ticket.pk)]
        assert data["booking_status"] == Booking.BookingStatus.CONFIRMED
        assert data["refund_amount"] == "1030.00"

    def test_cannot_cancel_someone_elses_ticket(self, other_client: Client, ticket: Ticket) -> None:
        response = other_client.post(reverse("api:cancel_ticket", kwargs={"ticket_id": ticket.pk}))

        assert response.status_code == 404

    def test_transfer_ticket(self, user_client: Client, ticket: Ticket, other_user: BoxOfficeUser) -> None:
        response = _post(
            user_client,
            reverse("api:transfer_ticket", kwargs={"ticket_id": ticket.pk}),
            {"email": other_user.email.upper()},
        )

        assert response.status_code == 200
        assert Ticket.objects.get(pk=response.json()["id"]).user == other_user

    def test_transfer_to_unknown_email(self, user_client: Client, ticket: Ticket) -> None:
        response = _post(
            user_client,
            reverse("api:transfer_ticket", kwargs={"ticket_id": ticket.pk}),
            {"email": "nobody@example.com"},
        )

        assert response.status_code == 404
