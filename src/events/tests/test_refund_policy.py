from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from events.exceptions import RefundWindowClosedError
from events.models import Booking, Event
from events.service.refund_policy import RefundPolicy, compute_booking_refund, compute_refund, days_until

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def _policy(kind: str, min_days: int = 7) -> RefundPolicy:
    return RefundPolicy(kind=kind, min_days_before_event=min_days, partial_fraction=Decimal("0.80"))


class TestComputeRefund:
    def test_full_refund(self) -> None:
        refund = compute_refund(Decimal("200.00"), _policy(Event.RefundPolicy.FULL), NOW + timedelta(days=10), NOW)

        assert refund == Decimal("200.00")

    def test_partial_refund(self) -> None:
        refund = compute_refund(
            Decimal("200.00"), _policy(Event.RefundPolicy.PARTIAL), NOW + timedelta(days=10), NOW
        )

        assert refund == Decimal("160.00")

    def test_no_refund_policy(self) -> None:
        refund = compute_refund(
            Decimal("200.00"), _policy(Event.RefundPolicy.NO_REFUND), NOW + timedelta(days=10), NOW
        )

        assert refund == Decimal("0.00")

    def test_inside_minimum_window(self) -> None:
        with pytest.raises(RefundWindowClosedError):
            compute_refund(Decimal("200.00"), _policy(Event.RefundPolicy.FULL), NOW + timedelta(days=2), NOW)

    def test_partial_day_rounds_up(self) -> None:
        start = NOW + timedelta(days=6, hours=12)

        assert days_until(start, NOW) == 7
        assert compute_refund(Decimal("50.00"), _policy(Event.RefundPolicy.FULL), start, NOW) == Decimal("50.00")

    def test_rounds_to_cents(self) -> None:
        refund = compute_refund(
            Decimal("33.33"), _policy(Event.RefundPolicy.PARTIAL), NOW + timedelta(days=30), NOW
        )

        assert refund == Decimal("26.66")


@pytest.mark.django_db
def test_booking_refund_uses_snapshot_policy(booking: Booking, event: Event) -> None:
    Event.objects.filter(pk=event.pk).update(refund_policy=Event.RefundPolicy.NO_REFUND)
    booking.refresh_from_db()

    assert compute_booking_refund(booking) == Decimal("2060.00")
