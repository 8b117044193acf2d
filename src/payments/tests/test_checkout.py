from datetime import timedelta
from decimal import Decimal

import pytest
from django.core.exceptions import ValidationError as DjangoValidationError
from freezegun import freeze_time

from accounts.models import BoxOfficeUser
from events.exceptions import InvalidStateTransitionError
from events.models import Booking, TicketType
from payments.exceptions import PaymentGatewayError
from payments.models import Transaction
from payments.service.checkout import GATEWAY_INITIALIZE_FAILED, initialize_transaction
from payments.testing import FakeGateway

pytestmark = pytest.mark.django_db


class TestInitializeTransaction:
    def test_opens_transaction_for_booking_total(
        self, booking_transaction: Transaction, booking: Booking, user: BoxOfficeUser, fake_gateway: FakeGateway
    ) -> None:
        txn = booking_transaction

        assert txn.status == Transaction.Status.PENDING
        assert txn.amount == booking.total == Decimal("2060.00")
        assert txn.amount_minor == 206000
        assert txn.email == user.email
        assert txn.gateway == "fake"
        assert txn.authorization_url == f"https://checkout.gateway.test/{txn.reference}"
        assert fake_gateway.initialized == [txn.reference]

    def test_open_transaction_is_reused(
        self, booking_transaction: Transaction, booking: Booking, user: BoxOfficeUser, fake_gateway: FakeGateway
    ) -> None:
        # Act
        again = initialize_transaction(user, booking)

        # Assert
        assert again.pk == booking_transaction.pk
        assert fake_gateway.initialized == [booking_transaction.reference]

    def test_amount_must_match_booking_total(self, booking: Booking, user: BoxOfficeUser) -> None:
        with pytest.raises(DjangoValidationError):
            initialize_transaction(user, booking, amount=Decimal("10.00"))

        assert not Transaction.objects.exists()

    def test_expired_booking_cannot_be_paid(self, booking: Booking, user: BoxOfficeUser) -> None:
        with freeze_time(booking.expires_at + timedelta(seconds=1)):
            with pytest.raises(InvalidStateTransitionError):
                initialize_transaction(user, booking)

    def test_gateway_outage_fails_transaction_but_keeps_reservation(
        self, booking: Booking, user: BoxOfficeUser, fake_gateway: FakeGateway, ticket_type: TicketType
    ) -> None:
        # Arrange
        fake_gateway.fail_initialize = True

        # Act 1: the gateway is down
        with pytest.raises(PaymentGatewayError):
            initialize_transaction(user, booking)

        # Assert 1: the transaction failed, the seats are still held
        txn = Transaction.objects.get()
        assert txn.status == Transaction.Status.FAILED
        assert txn.failure_reason == GATEWAY_INITIALIZE_FAILED
        booking.refresh_from_db()
        assert booking.status == Booking.BookingStatus.PENDING
        ticket_type.refresh_from_db()
        assert ticket_type.available_tickets == 8

        # Act 2: the gateway recovers and the caller retries
        fake_gateway.fail_initialize = False
        retried = initialize_transaction(user, booking)

        # Assert 2
        assert retried.pk != txn.pk
        assert retried.status == Transaction.Status.PENDING
