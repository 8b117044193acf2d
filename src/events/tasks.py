"""Celery tasks for event bookings."""

import structlog
from celery import shared_task
from django.db.models import Exists, OuterRef
from django.utils import timezone

from payments.models import Transaction

from .models import Booking
from .service import booking_service

logger = structlog.get_logger(__name__)


@shared_task(name="events.expire_pending_bookings")
def expire_pending_bookings(batch_size: int = 500) -> dict[str, int]:
    """Expire pending bookings past their deadline and release their reservations.

    Bookings whose payment is still open with the gateway are left alone until
    that transaction expires too. Each booking goes through the same guarded
    transition as a late webhook, so whichever runs first wins.
    """
    now = timezone.now()
    open_payment = Transaction.objects.filter(
        booking=OuterRef("pk"), status=Transaction.Status.PENDING, expires_at__gt=now
    )
    candidates = list(
        Booking.objects.expired_pending()
        .filter(~Exists(open_payment))
        .order_by("expires_at")[:batch_size]
    )
    expired = sum(1 for booking in candidates if booking_service.expire_booking(booking))
    logger.info("pending_bookings_expired", candidates=len(candidates), expired=expired)
    return {"candidates": len(candidates), "expired": expired}
