from .booking import Booking, BookingItem
from .event import DEFAULT_TICKET_TYPE_NAME, Event, TicketType
from .ticket import Ticket

__all__ = [
    "DEFAULT_TICKET_TYPE_NAME",
    "Booking",
    "BookingItem",
    "Event",
    "Ticket",
    "TicketType",
]
