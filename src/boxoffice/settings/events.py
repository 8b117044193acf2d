from decimal import Decimal

from decouple import config

# Pending bookings hold their inventory for this long before the sweep reclaims it
BOOKING_EXPIRY_HOURS = config("BOOKING_EXPIRY_HOURS", cast=int, default=24)
MAX_TICKETS_PER_PURCHASE = config("MAX_TICKETS_PER_PURCHASE", cast=int, default=10)
CANCELLATION_CUTOFF_HOURS = config("CANCELLATION_CUTOFF_HOURS", cast=int, default=24)

REFUND_PARTIAL_FRACTION = config("REFUND_PARTIAL_FRACTION", cast=Decimal, default="0.80")
REFUND_MIN_DAYS_BEFORE_EVENT = config("REFUND_MIN_DAYS_BEFORE_EVENT", cast=int, default=7)
