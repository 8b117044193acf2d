"""Tests for the refund workflow."""

import typing as t
from datetime import timedelta
from decimal import Decimal

import pytest
from freezegun import freeze_time

from accounts.models import BoxOfficeUser
from events.exceptions import InvalidStateTransitionError, RefundNotAllowedError, RefundWindowClosedError
from events.models import Booking, Event, Ticket, TicketType
from events.service.booking_service import PurchaseLine, create_booking
from payments.exceptions import PaymentGatewayError
from payments.models import Transaction
from payments.service import reconciliation, refunds
from payments.service.checkout import initialize_transaction
from payments.testing import FakeGateway, signed_webhook

pytestmark = pytest.mark.django_db


@pytest.fixture
def paid_transaction(booking: Booking, booking_transaction: Transaction) -> Transaction:
    return reconciliation.verify(booking_transaction)


class TestRequestRefund:
    def test_request_under_full_policy(self, paid_transaction: Transaction, user: BoxOfficeUser) -> None:
        txn = refunds.request_refund(paid_transaction, user, "Can't make it")

        assert txn.refund_status == Transaction.RefundStatus.REQUESTED
        assert txn.refund_amount == Decimal("2060.00")
        assert txn.refund_reason == "Can't make it"
        assert txn.refund_requested_at is not None

    def test_partial_policy_is_taken_from_snapshot(
        self, user: BoxOfficeUser, event: Event, ticket_type: TicketType
    ) -> None:
        Event.objects.filter(pk=event.pk).update(refund_policy=Event.RefundPolicy.PARTIAL)
        event.refresh_from_db()
        booking = create_booking(user, event, [PurchaseLine("Regular", 1)])
        txn = reconciliation.verify(initialize_transaction(user, booking))

        txn = refunds.request_refund(txn, user)

        assert txn.refund_amount == Decimal("824.00")

    def test_inside_minimum_window(self, paid_transaction: Transaction, user: BoxOfficeUser, event: Event) -> None:
        with freeze_time(event.start - timedelta(days=2)):
            with pytest.raises(RefundWindowClosedError):
                refunds.request_refund(paid_transaction, user)

    def test_only_payer_can_request(self, paid_transaction: Transaction, other_user: BoxOfficeUser) -> None:
        with pytest.raises(RefundNotAllowedError):
            refunds.request_refund(paid_transaction, other_user)

    def test_pending_payment_cannot_be_refunded(
        self, booking_transaction: Transaction, user: BoxOfficeUser
    ) -> None:
        with pytest.raises(RefundNotAllowedError):
            refunds.request_refund(booking_transaction, user)

    def test_duplicate_request(self, paid_transaction: Transaction, user: BoxOfficeUser) -> None:
        refunds.request_refund(paid_transaction, user)

        with pytest.raises(InvalidStateTransitionError):
            refunds.request_refund(paid_transaction, user)

    def test_no_refund_policy(self, paid_transaction: Transaction, user: BoxOfficeUser, booking: Booking) -> None:
        Booking.objects.filter(pk=booking.pk).update(
            event_snapshot={**booking.event_snapshot, "refund_policy": Event.RefundPolicy.NO_REFUND}
        )

        with pytest.raises(RefundNotAllowedError):
            refunds.request_refund(paid_transaction, user)


class TestProcessRefund:
    @pytest.fixture
    def requested(self, paid_transaction: Transaction, user: BoxOfficeUser) -> Transaction:
        return refunds.request_refund(paid_transaction, user, "Sick")

    def test_approve_refunds_through_gateway(
        self,
        requested: Transaction,
        organizer: BoxOfficeUser,
        booking: Booking,
        ticket_type: TicketType,
        fake_gateway: FakeGateway,
        django_capture_on_commit_callbacks: t.Any,
    ) -> None:
        with django_capture_on_commit_callbacks(execute=True):
            txn = refunds.process_refund(requested, organizer, "approve")

        assert txn.refund_processed_by == organizer
        assert fake_gateway.refunds == [(requested.reference, Decimal("2060.00"))]
        txn.refresh_from_db()
        booking.refresh_from_db()
        assert txn.refund_status == Transaction.RefundStatus.COMPLETED
        assert txn.metadata["refund_gateway_reference"] == f"rf_{txn.reference}"
        assert booking.status == Booking.BookingStatus.REFUNDED
        assert booking.payment_status == Booking.PaymentStatus.REFUNDED
        assert not booking.tickets.filter(status=Ticket.TicketStatus.CONFIRMED).exists()
        ticket_type.refresh_from_db()
        assert ticket_type.available_tickets == 10

    def test_unprocessed_refund_waits_for_webhook(
        self,
        requested: Transaction,
        organizer: BoxOfficeUser,
        booking: Booking,
        fake_gateway: FakeGateway,
        django_capture_on_commit_callbacks: t.Any,
    ) -> None:
        fake_gateway.refund_processed = False
        with django_capture_on_commit_callbacks(execute=True):
            refunds.process_refund(requested, organizer, "approve")
        requested.refresh_from_db()
        assert requested.refund_status == Transaction.RefundStatus.APPROVED

        body, headers = signed_webhook("refund.processed", {"transaction_reference": requested.reference})
        reconciliation.handle_webhook(reconciliation.parse_webhook(body, headers))

        requested.refresh_from_db()
        booking.refresh_from_db()
        assert requested.refund_status == Transaction.RefundStatus.COMPLETED
        assert booking.status == Booking.BookingStatus.REFUNDED

    def test_gateway_failure_leaves_refund_approved(
        self,
        requested: Transaction,
        organizer: BoxOfficeUser,
        fake_gateway: FakeGateway,
    ) -> None:
        refunds.approve_refund(requested, organizer)
        fake_gateway.fail_refund = True

        with pytest.raises(PaymentGatewayError):
            refunds.issue_refund(Transaction.objects.get(pk=requested.pk))

        requested.refresh_from_db()
        assert requested.refund_status == Transaction.RefundStatus.APPROVED

    def test_reject(self, requested: Transaction, staff_user: BoxOfficeUser, booking: Booking) -> None:
        txn = refunds.process_refund(requested, staff_user, "reject", "Outside policy")

        assert txn.refund_status == Transaction.RefundStatus.REJECTED
        assert txn.refund_rejection_reason == "Outside policy"
        booking.refresh_from_db()
        assert booking.status == Booking.BookingStatus.CONFIRMED

    def test_cannot_approve_twice(self, requested: Transaction, organizer: BoxOfficeUser) -> None:
        refunds.approve_refund(requested, organizer)

        with pytest.raises(InvalidStateTransitionError):
            refunds.approve_refund(requested, organizer)

    def test_permissions(
        self, requested: Transaction, organizer: BoxOfficeUser, staff_user: BoxOfficeUser, user: BoxOfficeUser
    ) -> None:
        assert refunds.can_process_refund(requested, organizer) is True
        assert refunds.can_process_refund(requested, staff_user) is True
        assert refunds.can_process_refund(requested, user) is False

    def test_completion_is_idempotent(
        self, requested: Transaction, organizer: BoxOfficeUser, fake_gateway: FakeGateway
    ) -> None:
        fake_gateway.refund_processed = False
        refunds.approve_refund(requested, organizer)

        refunds.complete_refund(requested)
        txn = refunds.complete_refund(requested)

        assert txn.refund_status == Transaction.RefundStatus.COMPLETED
