from django.utils.translation import gettext_lazy as _

from events.exceptions import BoxOfficeError


class PaymentGatewayError(BoxOfficeError):
    """The payment provider was unreachable or answered with an error."""

    code = "payment_provider_error"
    status_code = 502
    default_message = _("The payment provider could not process the request. Please retry.")

    def __init__(self, message: object = None, *, status: int | None = None, retryable: bool = True) -> None:
        self.gateway_status = status
        self.retryable = retryable
        super().__init__(message)


class SignatureInvalidError(BoxOfficeError):
    """A webhook payload failed signature verification."""

    code = "invalid_signature"
    status_code = 401
    default_message = _("Invalid webhook signature.")


class AmountMismatchError(BoxOfficeError):
    """The gateway reported a different amount or currency than the one on record."""

    code = "amount_mismatch"
    status_code = 409
    default_message = _("The paid amount does not match the transaction.")
