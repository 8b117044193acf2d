"""Tests for the service fee flow that creates free events once paid."""

import typing as t
from datetime import datetime
from decimal import Decimal
from unittest.mock import patch

import pytest
from django.utils import timezone
from pydantic import ValidationError as PydanticValidationError

from accounts.models import BoxOfficeUser
from events.exceptions import InvalidStateTransitionError
from events.models import Event
from payments.gateways import GatewayStatus, VerifyResult
from payments.models import Transaction
from payments.schema import ServiceFeeInitializeSchema
from payments.service import draft_gate, reconciliation

pytestmark = pytest.mark.django_db


@pytest.fixture
def service_fee_payload(next_month: datetime) -> ServiceFeeInitializeSchema:
    return ServiceFeeInitializeSchema.model_validate(
        {
            "event": {
                "title": "Community Picnic",
                "venue": "City Park",
                "start": next_month.isoformat(),
                "refund_policy": "no_refund",
                "ticket_types": [{"name": "Free Entry", "price": "0", "capacity": 80}],
            },
            "attendance_range": "1-100",
            "agreement": {"type": "percentage", "accepted_terms": True},
        }
    )


@pytest.fixture
def service_fee_transaction(organizer: BoxOfficeUser, service_fee_payload: ServiceFeeInitializeSchema) -> Transaction:
    return draft_gate.initialize_service_fee(organizer, service_fee_payload)


def _paid(txn: Transaction) -> VerifyResult:
    return VerifyResult(status=GatewayStatus.SUCCESS, amount=txn.amount, currency=txn.currency)


class TestInitializeServiceFee:
    def test_draft_event_travels_in_metadata(self, service_fee_transaction: Transaction) -> None:
        txn = service_fee_transaction

        assert txn.type == Transaction.Type.SERVICE_FEE
        assert txn.booking_id is None
        assert txn.amount == Decimal("100.00")
        assert txn.is_draft is True
        assert txn.metadata["event_data"]["title"] == "Community Picnic"
        assert txn.metadata["agreement"]["service_fee"] == "100.00"
        assert "accepted_at" in txn.metadata["agreement"]
        assert txn.authorization_url
        assert not Event.objects.exists()


class TestCompleteDraft:
    def test_payment_materializes_a_published_event(
        self, service_fee_transaction: Transaction, organizer: BoxOfficeUser
    ) -> None:
        txn = reconciliation.finalize(service_fee_transaction.reference, _paid(service_fee_transaction))

        event = Event.objects.get()
        assert txn.event_id == event.pk
        assert txn.is_draft is False
        assert txn.metadata["event_id"] == str(event.pk)
        assert event.status == Event.EventStatus.PUBLISHED
        assert event.organizer == organizer
        assert event.requires_service_fee is True
        assert event.service_fee_status == Event.ServiceFeeStatus.PAID
        assert event.service_fee_transaction_id == txn.pk
        assert event.service_fee_reference == txn.reference
        assert event.ticket_types.get().capacity == 80

    def test_complete_draft_is_idempotent(self, service_fee_transaction: Transaction) -> None:
        # Arrange
        reconciliation.finalize(service_fee_transaction.reference, _paid(service_fee_transaction))

        # Act
        first = draft_gate.complete_draft(service_fee_transaction.reference)
        second = draft_gate.complete_draft(service_fee_transaction.reference)

        # Assert
        assert first.pk == second.pk
        assert Event.objects.count() == 1

    def test_replayed_confirmation_creates_no_second_event(self, service_fee_transaction: Transaction) -> None:
        # Act: the webhook and the verify call both report success
        reconciliation.finalize(service_fee_transaction.reference, _paid(service_fee_transaction))
        reconciliation.finalize(service_fee_transaction.reference, _paid(service_fee_transaction))

        # Assert
        assert Event.objects.count() == 1

    def test_unpaid_transaction_is_rejected(self, service_fee_transaction: Transaction) -> None:
        with pytest.raises(InvalidStateTransitionError):
            draft_gate.complete_draft(service_fee_transaction.reference)

        assert not Event.objects.exists()

    def test_booking_transaction_is_rejected(self, booking_transaction: Transaction) -> None:
        with pytest.raises(InvalidStateTransitionError):
            draft_gate.complete_draft(booking_transaction.reference)

    def test_failed_service_fee_creates_nothing(self, service_fee_transaction: Transaction) -> None:
        txn = reconciliation.finalize(
            service_fee_transaction.reference, VerifyResult(status=GatewayStatus.FAILED, reason="Declined")
        )

        assert txn.status == Transaction.Status.FAILED
        assert not Event.objects.exists()

    def test_concurrent_completion_creates_one_event(self, service_fee_transaction: Transaction) -> None:
        """The slower caller read the transaction unlinked before the faster one committed its event."""
        # Arrange: paid, but not yet materialized
        Transaction.objects.filter(pk=service_fee_transaction.pk).update(
            status=Transaction.Status.COMPLETED, paid_at=timezone.now()
        )
        load_payload = draft_gate._draft_payload
        started: list[bool] = []
        faster: list[Event] = []

        def faster_caller_first(txn: Transaction) -> t.Any:
            if not started:
                started.append(True)
                faster.append(draft_gate.complete_draft(txn.reference))
            return load_payload(txn)

        # Act
        with patch.object(draft_gate, "_draft_payload", side_effect=faster_caller_first):
            event = draft_gate.complete_draft(service_fee_transaction.reference)

        # Assert
        assert event.pk == faster[0].pk
        assert Event.objects.count() == 1
        service_fee_transaction.refresh_from_db()
        assert service_fee_transaction.event_id == event.pk


class TestServiceFeeSchema:
    def test_priced_ticket_types_are_rejected(self, next_month: datetime) -> None:
        with pytest.raises(PydanticValidationError, match="only applies to free events"):
            ServiceFeeInitializeSchema.model_validate(
                {
                    "event": {
                        "title": "Gala Night",
                        "start": next_month.isoformat(),
                        "ticket_types": [{"name": "VIP", "price": "50000", "capacity": 500}],
                    },
                    "attendance_range": "101-500",
                    "agreement": {"accepted_terms": True},
                }
            )

    def test_legacy_price_is_checked_too(self, next_month: datetime) -> None:
        with pytest.raises(PydanticValidationError):
            ServiceFeeInitializeSchema.model_validate(
                {
                    "event": {"title": "Gala Night", "start": next_month.isoformat(), "price": "10", "capacity": 50},
                    "attendance_range": "1-100",
                    "agreement": {"accepted_terms": True},
                }
            )
