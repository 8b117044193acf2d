import structlog
from django.http import HttpRequest
from ninja_extra import api_controller, route

from common.schema import ErrorResponse, ResponseOk
from common.throttling import WebhookThrottle
from payments.service import reconciliation

logger = structlog.get_logger(__name__)


@api_controller("/transactions", auth=None, tags=["Transactions"], throttle=WebhookThrottle())
class PaymentWebhookController:
    @route.post("/webhook", url_name="payment_webhook", response={200: ResponseOk, 401: ErrorResponse})
    def handle_webhook(self, request: HttpRequest) -> ResponseOk:
        """Receive a signed payment notification from the gateway.

        Unsigned or tampered payloads get a 401 and change nothing. Authentic ones are always
        acknowledged with 200; if processing fails the transaction is settled later by the
        reconciliation sweep.
        """
        notification = reconciliation.parse_webhook(request.body, request.headers)
        try:
            reconciliation.handle_webhook(notification)
        except Exception:
            logger.exception(
                "webhook_processing_failed", event_type=notification.event_type, reference=notification.reference
            )
        return ResponseOk()
