from django.db import models


class NotificationType(models.TextChoices):
    BOOKING_CONFIRMED = "booking_confirmed", "Booking confirmed"
    BOOKING_CANCELLED = "booking_cancelled", "Booking cancelled"
    BOOKING_EXPIRED = "booking_expired", "Booking expired"
    PAYMENT_FAILED = "payment_failed", "Payment failed"
    TICKET_CHECKED_IN = "ticket_checked_in", "Ticket checked in"
    TICKET_TRANSFERRED = "ticket_transferred", "Ticket transferred"
    TICKET_CANCELLED = "ticket_cancelled", "Ticket cancelled"
    REFUND_REQUESTED = "refund_requested", "Refund requested"
    REFUND_APPROVED = "refund_approved", "Refund approved"
    REFUND_REJECTED = "refund_rejected", "Refund rejected"
    REFUND_COMPLETED = "refund_completed", "Refund completed"
    EVENT_PUBLISHED = "event_published", "Event published"
    TICKETS_AVAILABILITY_CHANGED = "tickets_availability_changed", "Ticket availability changed"
