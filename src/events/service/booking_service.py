"""Booking state machine.

``pending -> confirmed -> {cancelled, refunded}`` and ``pending -> {expired, cancelled}``.
Every transition is a conditional UPDATE guarded by the current status, so two
callers racing on the same booking (a late webhook and the expiry sweep, for
instance) cannot both win. Side effects run only for the caller that won.
"""

import typing as t
from dataclasses import dataclass, field
from datetime import timedelta
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

import structlog
from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.db.models import F
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from accounts.models import BoxOfficeUser
from events.exceptions import CancellationWindowClosedError, InvalidStateTransitionError
from events.models import Booking, BookingItem, Event, Ticket, TicketType
from events.service import inventory
from events.service.refund_policy import refund_or_zero
from notifications.enums import NotificationType
from notifications.service import publish

logger = structlog.get_logger(__name__)

CENT = Decimal("0.01")
ACTIVE_TICKET_STATUSES = (Ticket.TicketStatus.CONFIRMED, Ticket.TicketStatus.USED)


@dataclass(frozen=True)
class PurchaseLine:
    ticket_type: str | UUID | None
    quantity: int


@dataclass
class CancellationResult:
    booking: Booking
    cancelled_tickets: list[Ticket] = field(default_factory=list)
    refund_amount: Decimal = Decimal("0.00")
    booking_cancelled: bool = False


def _percent(amount: Decimal, percent: Decimal) -> Decimal:
    return (amount * percent / Decimal(100)).quantize(CENT, rounding=ROUND_HALF_UP)


def _customer_info(user: BoxOfficeUser) -> dict[str, str]:
    return {"name": user.get_display_name(), "email": user.email, "phone": user.phone_number}


@transaction.atomic
def create_booking(
    user: BoxOfficeUser,
    event: Event,
    lines: t.Sequence[PurchaseLine],
    customer_info: dict[str, t.Any] | None = None,
) -> Booking:
    """Reserve capacity for every line and open a pending booking.

    All reservations share this transaction: if any line is rejected the earlier
    decrements roll back with it. Zero-total bookings are confirmed on the spot.
    """
    if not lines:
        raise DjangoValidationError({"lines": [_("At least one ticket type is required.")]})

    tokens = [inventory.reserve(event, line.ticket_type, line.quantity) for line in lines]
    if len({token.ticket_type_id for token in tokens}) != len(tokens):
        raise DjangoValidationError({"lines": [_("Each ticket type can only appear once per order.")]})

    ticket_types = TicketType.objects.in_bulk([token.ticket_type_id for token in tokens])
    subtotal = sum(
        (ticket_types[token.ticket_type_id].price * token.quantity for token in tokens), start=Decimal("0")
    )
    service_fee = _percent(subtotal, settings.DEFAULT_PLATFORM_FEE_PERCENT)
    tax = _percent(subtotal, settings.DEFAULT_TAX_PERCENT)

    booking = Booking.objects.create(
        user=user,
        event=event,
        subtotal=subtotal,
        service_fee=service_fee,
        tax=tax,
        discount=Decimal("0"),
        total=subtotal + service_fee + tax,
        currency=event.currency,
        event_snapshot=event.snapshot(),
        customer_info=customer_info or _customer_info(user),
        expires_at=timezone.now() + timedelta(hours=settings.BOOKING_EXPIRY_HOURS),
    )
    for token in tokens:
        ticket_type = ticket_types[token.ticket_type_id]
        BookingItem.objects.create(
            booking=booking,
            ticket_type=ticket_type,
            ticket_type_name=ticket_type.name,
            quantity=token.quantity,
            unit_price=ticket_type.price,
            subtotal=ticket_type.price * token.quantity,
        )

    logger.info(
        "booking_created",
        booking_id=str(booking.pk),
        order_number=booking.order_number,
        event_id=str(event.pk),
        total=str(booking.total),
    )

    if booking.total == 0:
        confirm_booking(booking, payment_status=Booking.PaymentStatus.NOT_REQUIRED)
        booking.refresh_from_db()
    return booking


def confirm_booking(booking: Booking, *, payment_status: str = Booking.PaymentStatus.PAID) -> bool:
    """Move a booking to ``confirmed`` and mint its tickets.

    Re-confirming an already confirmed booking resumes minting without issuing
    duplicates. Returns True only for the call that performed the transition.

    Raises:
        InvalidStateTransitionError: the booking is neither pending nor confirmed.
    """
    now = timezone.now()
    with transaction.atomic():
        won = bool(
            Booking.objects.filter(pk=booking.pk, status=Booking.BookingStatus.PENDING).update(
                status=Booking.BookingStatus.CONFIRMED,
                payment_status=payment_status,
                confirmed_at=now,
                updated_at=now,
            )
        )
        booking.refresh_from_db()
        if booking.status != Booking.BookingStatus.CONFIRMED:
            raise InvalidStateTransitionError(
                _("Booking {order} cannot be confirmed from {status}.").format(
                    order=booking.order_number, status=booking.status
                )
            )
        minted = mint_tickets(booking)
        if won:
            Event.objects.filter(pk=booking.event_id).update(
                tickets_sold=F("tickets_sold") + len(minted), revenue=F("revenue") + booking.subtotal
            )
            publish(
                NotificationType.BOOKING_CONFIRMED,
                user_id=booking.user_id,
                booking_id=booking.pk,
                order_number=booking.order_number,
            )

    logger.info("booking_confirmed", booking_id=str(booking.pk), transitioned=won, minted=len(minted))
    return won


@transaction.atomic
def mint_tickets(booking: Booking) -> list[Ticket]:
    """Issue every ticket the booking is owed that does not exist yet.

    Each ticket carries its position in the booking (``sequence``), unique per
    booking, so a retry after a partial failure fills the gaps and nothing more.
    """
    locked = Booking.objects.select_for_update().get(pk=booking.pk)
    if locked.status != Booking.BookingStatus.CONFIRMED:
        raise InvalidStateTransitionError(_("Tickets are only issued for confirmed bookings."))

    existing = set(
        Ticket.objects.filter(booking=locked, sequence__isnull=False).values_list("sequence", flat=True)
    )
    holder_name = locked.customer_info.get("name", "")
    created: list[Ticket] = []
    sequence = 0
    for item in locked.items.select_related("ticket_type").order_by("created_at", "pk"):
        for _unit in range(item.quantity):
            if sequence not in existing:
                created.append(
                    Ticket.objects.create(
                        booking=locked,
                        event_id=locked.event_id,
                        ticket_type=item.ticket_type,
                        user_id=locked.user_id,
                        sequence=sequence,
                        price=item.unit_price,
                        holder_name=holder_name,
                    )
                )
            sequence += 1

    Booking.objects.filter(pk=locked.pk).update(tickets_minted=sequence)
    if created:
        logger.info("tickets_minted", booking_id=str(locked.pk), count=len(created), generation=sequence)
    return created


def _release_booking_inventory(booking: Booking) -> None:
    for token in inventory.tokens_for(booking.items.select_related("booking")):
        inventory.release(token)


def expire_booking(booking: Booking) -> bool:
    """``pending -> expired`` once the reservation window has elapsed; releases capacity."""
    now = timezone.now()
    with transaction.atomic():
        won = bool(
            Booking.objects.filter(
                pk=booking.pk, status=Booking.BookingStatus.PENDING, expires_at__lt=now
            ).update(status=Booking.BookingStatus.EXPIRED, updated_at=now)
        )
        if not won:
            return False
        _release_booking_inventory(booking)
        publish(NotificationType.BOOKING_EXPIRED, user_id=booking.user_id, booking_id=booking.pk)
    logger.info("booking_expired", booking_id=str(booking.pk))
    return True


def fail_booking(booking: Booking, reason: str) -> bool:
    """``pending -> cancelled`` after a failed payment; releases capacity."""
    now = timezone.now()
    with transaction.atomic():
        won = bool(
            Booking.objects.filter(pk=booking.pk, status=Booking.BookingStatus.PENDING).update(
                status=Booking.BookingStatus.CANCELLED,
                payment_status=Booking.PaymentStatus.FAILED,
                cancelled_at=now,
                cancellation_reason=reason[:255],
                updated_at=now,
            )
        )
        if not won:
            return False
        _release_booking_inventory(booking)
        publish(NotificationType.PAYMENT_FAILED, user_id=booking.user_id, booking_id=booking.pk, reason=reason)
    logger.info("booking_payment_failed", booking_id=str(booking.pk), reason=reason)
    return True


def _ensure_cancellable(booking: Booking) -> None:
    if booking.status != Booking.BookingStatus.CONFIRMED:
        raise InvalidStateTransitionError(_("Only confirmed bookings can be cancelled."))
    if booking.transactions.exclude(refund_status="none").exists():
        raise InvalidStateTransitionError(_("A refund is already in progress for this booking."))
    cutoff = booking.event.start - timedelta(hours=settings.CANCELLATION_CUTOFF_HOURS)
    if timezone.now() >= cutoff:
        raise CancellationWindowClosedError(
            _("Tickets cannot be cancelled within {hours} hours of the event.").format(
                hours=settings.CANCELLATION_CUTOFF_HOURS
            )
        )


def _ticket_refund_base(booking: Booking, ticket: Ticket) -> Decimal:
    """The ticket's share of the booking total (face value plus its part of fees and tax)."""
    if booking.subtotal <= 0:
        return Decimal("0.00")
    return (ticket.price * booking.total / booking.subtotal).quantize(CENT, rounding=ROUND_HALF_UP)


def _cancel_tickets(
    booking: Booking, tickets: t.Iterable[Ticket], reason: str, *, close_booking: bool = True
) -> CancellationResult:
    now = timezone.now()
    result = CancellationResult(booking=booking)
    for ticket in tickets:
        won = Ticket.objects.filter(pk=ticket.pk, status=Ticket.TicketStatus.CONFIRMED).update(
            status=Ticket.TicketStatus.CANCELLED, cancelled_at=now, updated_at=now
        )
        if not won:
            continue
        inventory.release(inventory.ReservationToken(booking.event_id, ticket.ticket_type_id, 1))
        Event.objects.filter(pk=booking.event_id).update(
            tickets_sold=F("tickets_sold") - 1, revenue=F("revenue") - ticket.price
        )
        if close_booking:
            result.refund_amount += refund_or_zero(_ticket_refund_base(booking, ticket), booking, now)
        result.cancelled_tickets.append(ticket)

    if result.refund_amount:
        Booking.objects.filter(pk=booking.pk).update(refund_amount=F("refund_amount") + result.refund_amount)

    still_active = Ticket.objects.filter(booking=booking, status__in=ACTIVE_TICKET_STATUSES).exists()
    if close_booking and not still_active:
        result.booking_cancelled = bool(
            Booking.objects.filter(pk=booking.pk, status=Booking.BookingStatus.CONFIRMED).update(
                status=Booking.BookingStatus.CANCELLED, cancelled_at=now, cancellation_reason=reason, updated_at=now
            )
        )
    booking.refresh_from_db()
    logger.info(
        "tickets_cancelled",
        booking_id=str(booking.pk),
        count=len(result.cancelled_tickets),
        refund_amount=str(result.refund_amount),
        booking_cancelled=result.booking_cancelled,
    )
    return result


@transaction.atomic
def cancel_ticket(ticket: Ticket, user: BoxOfficeUser) -> CancellationResult:
    """Cancel one confirmed ticket held by ``user``."""
    booking = ticket.booking
    _ensure_cancellable(booking)
    if ticket.status != Ticket.TicketStatus.CONFIRMED:
        raise InvalidStateTransitionError(_("Only confirmed tickets can be cancelled."))
    result = _cancel_tickets(booking, [ticket], reason=str(_("Cancelled by ticket holder.")))
    if not result.cancelled_tickets:
        raise InvalidStateTransitionError(_("Only confirmed tickets can be cancelled."))
    publish(NotificationType.TICKET_CANCELLED, user_id=user.pk, ticket_id=ticket.pk)
    return result


@transaction.atomic
def cancel_booking(booking: Booking, user: BoxOfficeUser) -> CancellationResult:
    """Cancel every confirmed ticket of a booking."""
    _ensure_cancellable(booking)
    result = _cancel_tickets(booking, booking.tickets.active(), reason=str(_("Cancelled by customer.")))
    if not result.booking_cancelled:
        raise InvalidStateTransitionError(_("This booking has tickets that can no longer be cancelled."))
    publish(NotificationType.BOOKING_CANCELLED, user_id=user.pk, booking_id=booking.pk)
    return result


def release_for_refund(booking: Booking) -> CancellationResult:
    """Void the remaining tickets of a booking whose refund was approved.

    The booking itself stays confirmed until the gateway reports the refund as
    processed (see ``mark_refunded``).
    """
    result = _cancel_tickets(booking, booking.tickets.active(), reason=str(_("Refund approved.")), close_booking=False)
    Booking.objects.filter(pk=booking.pk).update(
        payment_status=Booking.PaymentStatus.REFUND_PENDING, updated_at=timezone.now()
    )
    booking.refresh_from_db()
    return result


def mark_refunded(booking: Booking) -> bool:
    """Record refund completion: ``confirmed -> refunded`` or, for cancelled bookings, the payment status only."""
    now = timezone.now()
    won = bool(
        Booking.objects.filter(pk=booking.pk, status=Booking.BookingStatus.CONFIRMED).update(
            status=Booking.BookingStatus.REFUNDED, payment_status=Booking.PaymentStatus.REFUNDED, updated_at=now
        )
    )
    if not won:
        Booking.objects.filter(pk=booking.pk).update(payment_status=Booking.PaymentStatus.REFUNDED, updated_at=now)
    booking.refresh_from_db()
    return won
