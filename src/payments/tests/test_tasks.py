from datetime import timedelta

import pytest
from freezegun import freeze_time

from accounts.models import BoxOfficeUser
from events.models import Booking
from payments.exceptions import PaymentGatewayError
from payments.models import Transaction
from payments.service import reconciliation, refunds
from payments.tasks import issue_gateway_refund, reconcile_stale_transactions
from payments.testing import FakeGateway

pytestmark = pytest.mark.django_db


class TestReconcileStaleTransactions:
    def test_task_returns_summary(self, booking: Booking, booking_transaction: Transaction) -> None:
        with freeze_time(booking_transaction.expires_at + timedelta(minutes=5)):
            summary = reconcile_stale_transactions()

        assert summary["checked"] == 1
        assert summary["completed"] == 1


class TestIssueGatewayRefund:
    def test_skips_transactions_that_are_not_approved(
        self, booking_transaction: Transaction, fake_gateway: FakeGateway
    ) -> None:
        result = issue_gateway_refund(str(booking_transaction.pk))

        assert result == Transaction.RefundStatus.NONE
        assert fake_gateway.refunds == []

    def test_issues_approved_refund(
        self, booking_transaction: Transaction, user: BoxOfficeUser, organizer: BoxOfficeUser
    ) -> None:
        txn = reconciliation.verify(booking_transaction)
        refunds.request_refund(txn, user)
        refunds.approve_refund(txn, organizer)

        result = issue_gateway_refund(str(txn.pk))

        assert result == Transaction.RefundStatus.COMPLETED

    def test_gateway_errors_are_retried_by_celery(self) -> None:
        assert issue_gateway_refund.autoretry_for == (PaymentGatewayError,)
        assert issue_gateway_refund.max_retries == 5
