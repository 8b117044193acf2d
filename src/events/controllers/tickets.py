from uuid import UUID

from django.db.models import QuerySet
from django.shortcuts import get_object_or_404
from django.utils.translation import gettext_lazy as _
from ninja.errors import HttpError
from ninja_extra import api_controller, route
from ninja_extra.pagination import PageNumberPaginationExtra, PaginatedResponseSchema, paginate

from accounts.models import BoxOfficeUser
from common.authentication import I18nJWTAuth
from common.controllers import UserAwareController
from common.schema import ErrorResponse
from common.throttling import PurchaseThrottle, UserDefaultThrottle, WriteThrottle
from events import models, schema
from events.service import booking_service, ticket_service
from payments.service import refunds


@api_controller("/tickets", auth=I18nJWTAuth(), tags=["Tickets"], throttle=UserDefaultThrottle())
class TicketController(UserAwareController):
    def get_user_ticket(self, ticket_id: UUID) -> models.Ticket:
        return get_object_or_404(models.Ticket.objects.with_event(), pk=ticket_id, user=self.user())

    @route.post(
        "/purchase",
        url_name="purchase_tickets",
        response={201: schema.PurchaseResponseSchema, 404: ErrorResponse, 409: ErrorResponse},
        throttle=PurchaseThrottle(),
    )
    def purchase(self, payload: schema.PurchaseSchema) -> tuple[int, schema.PurchaseResponseSchema]:
        """Reserve tickets and open a booking.

        Capacity is claimed immediately and held until the booking expires. Paid bookings
        stay `pending` until the payment started with `/transactions/initialize` completes;
        free bookings are confirmed at once and their tickets are returned.

        Returns 409 with the remaining `available` count when the ticket type cannot cover
        the requested quantity.
        """
        event = get_object_or_404(models.Event, pk=payload.event_id)
        booking = booking_service.create_booking(
            self.user(), event, [booking_service.PurchaseLine(payload.ticket_type, payload.quantity)]
        )
        return 201, schema.PurchaseResponseSchema(
            booking_id=booking.pk,
            order_number=booking.order_number,
            status=booking.status,
            ticket_ids=list(booking.tickets.values_list("id", flat=True)),
            total_amount=booking.total,
            currency=booking.currency,
            expires_at=booking.expires_at,
        )

    @route.get("/mine", url_name="my_tickets", response=PaginatedResponseSchema[schema.TicketSchema])
    @paginate(PageNumberPaginationExtra, page_size=20)
    def my_tickets(self) -> QuerySet[models.Ticket]:
        """List the tickets you hold, newest first."""
        return models.Ticket.objects.with_event().filter(user=self.user()).order_by("-created_at")

    @route.post(
        "/{uuid:ticket_id}/validate",
        url_name="validate_ticket",
        response={200: schema.TicketSchema, 400: ErrorResponse, 403: ErrorResponse},
        throttle=WriteThrottle(),
    )
    def validate_ticket(self, ticket_id: UUID) -> models.Ticket:
        """Check a ticket in at the door. Only the event organizer or staff can do this.

        Tickets can be checked in once; used, cancelled and transferred tickets are rejected.
        """
        return ticket_service.check_in_ticket(ticket_id, self.user())

    @route.post(
        "/{uuid:ticket_id}/cancel",
        url_name="cancel_ticket",
        response={200: schema.CancellationResponseSchema, 400: ErrorResponse, 409: ErrorResponse},
        throttle=WriteThrottle(),
    )
    def cancel_ticket(self, ticket_id: UUID) -> schema.CancellationResponseSchema:
        """Cancel one of your confirmed tickets.

        The seat goes back on sale. The refund owed under the event's policy is added to the
        booking and requested once the whole booking is cancelled.
        """
        ticket = self.get_user_ticket(ticket_id)
        result = booking_service.cancel_ticket(ticket, self.user())
        if result.booking_cancelled:
            refunds.open_cancellation_refund(result.booking, str(_("Booking cancelled by customer.")))
        return schema.CancellationResponseSchema(
            booking_id=result.booking.pk,
            booking_status=result.booking.status,
            cancelled_ticket_ids=[ticket.pk for ticket in result.cancelled_tickets],
            refund_amount=result.booking.refund_amount,
        )

    @route.post(
        "/{uuid:ticket_id}/transfer",
        url_name="transfer_ticket",
        response={200: schema.TicketSchema, 400: ErrorResponse, 404: ErrorResponse},
        throttle=WriteThrottle(),
    )
    def transfer_ticket(self, ticket_id: UUID, payload: schema.TicketTransferSchema) -> models.Ticket:
        """Give one of your confirmed tickets to another registered user.

        Your ticket becomes `transferred` and the recipient gets a new ticket in the same booking.
        """
        ticket = self.get_user_ticket(ticket_id)
        try:
            recipient = BoxOfficeUser.objects.get_by_email(payload.email)
        except BoxOfficeUser.DoesNotExist:
            raise HttpError(404, str(_("No user is registered with this email address.")))
        return ticket_service.transfer_ticket(ticket, self.user(), recipient)
