"""Refund amount calculation.

The policy a booking is refunded under is the one captured in its event
snapshot at purchase time; the time-to-event is measured against the live
event start so postponements are honoured.
"""

import math
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from django.conf import settings
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from events.exceptions import RefundWindowClosedError
from events.models import Booking, Event

CENT = Decimal("0.01")


@dataclass(frozen=True)
class RefundPolicy:
    kind: str
    min_days_before_event: int
    partial_fraction: Decimal

    @classmethod
    def for_booking(cls, booking: Booking) -> "RefundPolicy":
        snapshot = booking.event_snapshot or {}
        return cls(
            kind=snapshot.get("refund_policy") or booking.event.refund_policy,
            min_days_before_event=int(
                snapshot.get("refund_min_days_before_event", booking.event.refund_min_days_before_event)
            ),
            partial_fraction=Decimal(str(settings.REFUND_PARTIAL_FRACTION)),
        )


def days_until(start: datetime, now: datetime) -> int:
    """Whole days until ``start``, rounded up (a request 6.5 days out counts as 7)."""
    return math.ceil((start - now).total_seconds() / 86400)


def compute_refund(
    amount: Decimal,
    policy: RefundPolicy,
    event_start: datetime,
    now: datetime | None = None,
) -> Decimal:
    """Refundable part of ``amount`` under ``policy``.

    Raises:
        RefundWindowClosedError: the request falls inside the policy's minimum-days window.
    """
    now = now or timezone.now()
    remaining = days_until(event_start, now)
    if remaining < policy.min_days_before_event:
        raise RefundWindowClosedError(
            _("Refunds must be requested at least {days} days before the event.").format(
                days=policy.min_days_before_event
            )
        )
    match policy.kind:
        case Event.RefundPolicy.FULL:
            refund = amount
        case Event.RefundPolicy.PARTIAL:
            refund = amount * policy.partial_fraction
        case Event.RefundPolicy.NO_REFUND:
            refund = Decimal("0")
        case _:
            raise ValueError(f"Unknown refund policy {policy.kind!r}")
    return refund.quantize(CENT, rounding=ROUND_HALF_UP)


def compute_booking_refund(booking: Booking, now: datetime | None = None, policy: RefundPolicy | None = None) -> Decimal:
    """Refund owed on the whole booking total."""
    return compute_refund(booking.total, policy or RefundPolicy.for_booking(booking), booking.event.start, now)


def refund_or_zero(amount: Decimal, booking: Booking, now: datetime | None = None) -> Decimal:
    """Like ``compute_refund`` but a closed window simply yields nothing (used by cancellations)."""
    try:
        return compute_refund(amount, RefundPolicy.for_booking(booking), booking.event.start, now)
    except RefundWindowClosedError:
        return Decimal("0.00")
