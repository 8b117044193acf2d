"""Celery tasks for payment reconciliation and refunds."""

import structlog
from celery import shared_task

from .exceptions import PaymentGatewayError
from .models import Transaction
from .service import reconciliation, refunds

logger = structlog.get_logger(__name__)


@shared_task(name="payments.reconcile_stale_transactions")
def reconcile_stale_transactions() -> dict[str, int]:
    """Poll the gateway for pending transactions nobody settled before their expiry."""
    summary = reconciliation.reconcile_stale()
    logger.info("stale_transactions_reconciled", **summary)
    return summary


@shared_task(
    name="payments.issue_gateway_refund",
    bind=True,
    max_retries=5,
    default_retry_delay=60,
    autoretry_for=(PaymentGatewayError,),
    retry_backoff=True,
)
def issue_gateway_refund(self: object, transaction_id: str) -> str:
    """Send an approved refund to the payment gateway.

    Args:
        self: Celery task instance (bound task).
        transaction_id: The UUID of the transaction being refunded.

    Returns:
        The transaction's refund status after the attempt.
    """
    txn = Transaction.objects.get(pk=transaction_id)
    txn = refunds.issue_refund(txn)
    return str(txn.refund_status)
