from django.conf import settings
from ninja_extra.throttling import AnonRateThrottle, UserRateThrottle


class AnonDefaultThrottle(AnonRateThrottle):
    rate = settings.THROTTLE_RATES["anon_default"]


class UserDefaultThrottle(UserRateThrottle):
    rate = settings.THROTTLE_RATES["user_default"]


class WriteThrottle(UserRateThrottle):
    rate = settings.THROTTLE_RATES["write"]


class PurchaseThrottle(UserRateThrottle):
    """Ticket purchases and payment initialization; each call holds inventory."""

    rate = settings.THROTTLE_RATES["purchase"]


class WebhookThrottle(AnonRateThrottle):
    """Gateways deliver in bursts from a handful of addresses."""

    rate = settings.THROTTLE_RATES["webhook"]
