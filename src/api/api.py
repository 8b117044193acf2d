from django.conf import settings
from django.core.exceptions import ValidationError
from django.http import HttpRequest
from ninja_extra import NinjaExtraAPI
from ninja_jwt.controller import NinjaJWTDefaultController

from common.schema import ResponseOk, VersionResponse
from common.throttling import AnonDefaultThrottle, UserDefaultThrottle
from events.controllers.bookings import BookingController
from events.controllers.events import EventController
from events.controllers.tickets import TicketController
from events.exceptions import BoxOfficeError
from payments.controllers.transactions import TransactionController
from payments.controllers.webhook import PaymentWebhookController

from .exception_handlers import (
    handle_box_office_error,
    handle_django_validation_error,
    handle_general_exception,
)

api = NinjaExtraAPI(
    title="BoxOffice API",
    docs_url="/docs",
    version=settings.VERSION,
    description=f"BoxOffice API {settings.VERSION}",
    app_name=f"boxoffice-api-{settings.VERSION}",
    urls_namespace="api",
    servers=[
        {"url": settings.SERVICE_URL, "description": settings.SERVICE_DESCRIPTION},
    ],
    throttle=[AnonDefaultThrottle(), UserDefaultThrottle()],
)


@api.get("/version", tags=["Version"], response={200: VersionResponse})
def version(request: HttpRequest) -> tuple[int, VersionResponse]:
    """Get the API version.

    Args:
        request: The incoming HTTP request.

    Returns:
        The response status code and message.
    """
    return 200, VersionResponse(version=settings.VERSION)


@api.get("/healthcheck", tags=["Healthcheck"], response={200: ResponseOk})
def healthcheck(request: HttpRequest) -> tuple[int, ResponseOk]:
    """Check the health of the API.

    Args:
        request: The incoming HTTP request.

    Returns:
        The response status code and message.
    """
    return 200, ResponseOk()


api.register_controllers(
    # Auth controllers
    NinjaJWTDefaultController,
    # Event controllers
    EventController,
    TicketController,
    BookingController,
    # Payment controllers; the webhook goes first so its static path wins over /transactions/{reference}
    PaymentWebhookController,
    TransactionController,
)

EXCEPTION_HANDLERS = {
    Exception: handle_general_exception,
    ValidationError: handle_django_validation_error,
    BoxOfficeError: handle_box_office_error,
}

for exc, handler in EXCEPTION_HANDLERS.items():
    api.add_exception_handler(exc, handler)
