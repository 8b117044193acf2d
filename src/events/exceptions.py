import typing as t

from django.utils.translation import gettext_lazy as _


class BoxOfficeError(Exception):
    """Base class for business-rule violations surfaced to the caller."""

    code = "error"
    status_code = 400
    default_message: t.Any = _("The request could not be completed.")

    def __init__(self, message: t.Any = None) -> None:
        self.message = str(message if message is not None else self.default_message)
        super().__init__(self.message)


class TicketTypeNotFoundError(BoxOfficeError):
    """Raised when the requested ticket type does not exist on the event."""

    code = "not_found"
    status_code = 404
    default_message = _("Ticket type not found.")


class InsufficientCapacityError(BoxOfficeError):
    """Raised when a ticket type cannot cover the requested quantity."""

    code = "insufficient_capacity"
    status_code = 409

    def __init__(self, available: int, requested: int) -> None:
        self.available = available
        self.requested = requested
        super().__init__(
            _("Only {available} ticket(s) left, {requested} requested.").format(
                available=available, requested=requested
            )
        )


class EventNotBookableError(BoxOfficeError):
    """Raised when an event is not published or has already started."""

    code = "event_not_bookable"
    default_message = _("This event is not open for booking.")


class InvalidStateTransitionError(BoxOfficeError):
    """Raised when a record is not in a state that allows the requested change."""

    code = "invalid_state"
    status_code = 409
    default_message = _("This action is not allowed in the current state.")


class CancellationWindowClosedError(BoxOfficeError):
    """Raised when a cancellation is attempted too close to the event start."""

    code = "cancellation_window_closed"
    default_message = _("Tickets can no longer be cancelled for this event.")


class RefundWindowClosedError(BoxOfficeError):
    """Raised when a refund is requested inside the event's minimum-days window."""

    code = "refund_window_closed"
    default_message = _("Refunds are no longer available for this event.")


class RefundNotAllowedError(BoxOfficeError):
    """Raised when the refund workflow rejects a request outright."""

    code = "refund_not_allowed"
    default_message = _("This transaction is not eligible for a refund.")
