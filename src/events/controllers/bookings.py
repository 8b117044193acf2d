from uuid import UUID

from django.db.models import Q
from django.shortcuts import get_object_or_404
from django.utils.translation import gettext_lazy as _
from ninja_extra import api_controller, route

from common.authentication import I18nJWTAuth
from common.controllers import UserAwareController
from common.schema import ErrorResponse
from common.throttling import UserDefaultThrottle, WriteThrottle
from events import models, schema
from events.service import booking_service
from payments.service import refunds


@api_controller("/bookings", auth=I18nJWTAuth(), tags=["Bookings"], throttle=UserDefaultThrottle())
class BookingController(UserAwareController):
    @route.get("/{uuid:booking_id}", url_name="get_booking", response=schema.BookingSchema)
    def get_booking(self, booking_id: UUID) -> models.Booking:
        """Get one of your bookings with its line items and tickets.

        Organizers can also read the bookings of their events.
        """
        user = self.user()
        qs = models.Booking.objects.select_related("event").prefetch_related("items")
        if not user.is_staff:
            qs = qs.filter(Q(user=user) | Q(event__organizer=user))
        return get_object_or_404(qs, pk=booking_id)

    @route.post(
        "/{uuid:booking_id}/cancel",
        url_name="cancel_booking",
        response={200: schema.CancellationResponseSchema, 400: ErrorResponse, 409: ErrorResponse},
        throttle=WriteThrottle(),
    )
    def cancel_booking(self, booking_id: UUID) -> schema.CancellationResponseSchema:
        """Cancel every ticket of one of your confirmed bookings and request the refund owed."""
        booking = get_object_or_404(models.Booking.objects.select_related("event"), pk=booking_id, user=self.user())
        result = booking_service.cancel_booking(booking, self.user())
        refunds.open_cancellation_refund(result.booking, str(_("Booking cancelled by customer.")))
        return schema.CancellationResponseSchema(
            booking_id=result.booking.pk,
            booking_status=result.booking.status,
            cancelled_ticket_ids=[ticket.pk for ticket in result.cancelled_tickets],
            refund_amount=result.booking.refund_amount,
        )
