from decimal import Decimal
from uuid import UUID

from django.db.models import QuerySet
from django.shortcuts import get_object_or_404
from django.utils.translation import gettext_lazy as _
from ninja import Query
from ninja.errors import HttpError
from ninja_extra import api_controller, route
from ninja_extra.pagination import PageNumberPaginationExtra, PaginatedResponseSchema, paginate

from common.authentication import I18nJWTAuth
from common.controllers import UserAwareController
from common.schema import ErrorResponse
from common.throttling import PurchaseThrottle, UserDefaultThrottle, WriteThrottle
from events.models import Booking, Event
from events.schema import EventSchema
from payments import schema
from payments.models import Transaction
from payments.service import checkout, draft_gate, reconciliation, refunds
from payments.service.service_fee import AgreementType, ServiceFeeQuote, calculate_service_fee


@api_controller("/transactions", auth=I18nJWTAuth(), tags=["Transactions"], throttle=UserDefaultThrottle())
class TransactionController(UserAwareController):
    def get_own_transaction(self, reference: str) -> Transaction:
        """Owners and staff only; anybody else gets a 403."""
        txn = get_object_or_404(Transaction.objects.select_related("booking"), reference=reference)
        user = self.user()
        if txn.user_id != user.pk and not user.is_staff:
            raise HttpError(403, str(_("You do not have access to this transaction.")))
        return txn

    @route.post(
        "/initialize",
        url_name="initialize_transaction",
        response={200: schema.TransactionInitializeResponseSchema, 409: ErrorResponse, 502: ErrorResponse},
        throttle=PurchaseThrottle(),
    )
    def initialize(self, payload: schema.TransactionInitializeSchema) -> Transaction:
        """Start paying for one of your pending bookings.

        Returns the `reference` to poll with `/transactions/verify/{reference}` and the
        `payment_url` to send the payer to. Calling this again while the payment is still
        open returns the same transaction. The amount charged is always the booking total.
        """
        booking = get_object_or_404(Booking, pk=payload.booking_id, user=self.user())
        return checkout.initialize_transaction(
            self.user(),
            booking,
            amount=payload.amount,
            email=payload.email,
            callback_url=payload.callback_url,
        )

    @route.get(
        "/verify/{reference}",
        url_name="verify_transaction",
        response={200: schema.VerifyResponseSchema, 403: ErrorResponse, 502: ErrorResponse},
    )
    def verify(self, reference: str) -> schema.VerifyResponseSchema:
        """Check a payment with the gateway and settle it.

        Safe to call any number of times, before or after the gateway's webhook: once the
        transaction is `completed` or `failed` it is returned as is.
        """
        txn = reconciliation.verify(self.get_own_transaction(reference))
        booking = Booking.objects.filter(pk=txn.booking_id).first() if txn.booking_id else None
        return schema.VerifyResponseSchema(
            transaction=schema.TransactionSchema.from_orm(txn),
            booking=schema.BookingStateSchema.from_orm(booking) if booking else None,
            event_id=txn.event_id,
        )

    @route.get("/service-fee", url_name="service_fee_quote", response=schema.ServiceFeeQuoteSchema)
    def service_fee_quote(
        self,
        attendance_range: str = Query(...),  # type: ignore[type-arg]
        agreement_type: AgreementType = AgreementType.PERCENTAGE,
        agreement_amount: Decimal | None = None,
    ) -> ServiceFeeQuote:
        """Quote the upfront service fee for a free event of the given expected attendance."""
        return calculate_service_fee(attendance_range, agreement_type, agreement_amount)

    @route.post(
        "/initialize-service-fee",
        url_name="initialize_service_fee",
        response={200: schema.TransactionInitializeResponseSchema, 502: ErrorResponse},
        throttle=WriteThrottle(),
    )
    def initialize_service_fee(self, payload: schema.ServiceFeeInitializeSchema) -> Transaction:
        """Pay the service fee for a free event that does not exist yet.

        The full event is sent along and validated up front. It is created, already
        published, as soon as the payment completes; `/transactions/{reference}/complete-draft-event`
        can be called to fetch it (or to retry its creation).
        """
        return draft_gate.initialize_service_fee(self.user(), payload)

    @route.get("/mine", url_name="my_transactions", response=PaginatedResponseSchema[schema.TransactionSchema])
    @paginate(PageNumberPaginationExtra, page_size=20)
    def my_transactions(self) -> QuerySet[Transaction]:
        """List your payments, newest first."""
        return Transaction.objects.for_user(self.user())

    @route.post(
        "/{reference}/complete-draft-event",
        url_name="complete_draft_event",
        response={200: EventSchema, 403: ErrorResponse, 409: ErrorResponse},
        throttle=WriteThrottle(),
    )
    def complete_draft_event(self, reference: str) -> Event:
        """Get the event paid for by a service fee transaction, creating it if needed."""
        txn = self.get_own_transaction(reference)
        return draft_gate.complete_draft(txn.reference)

    @route.get("/{reference}", url_name="get_transaction", response={200: schema.TransactionSchema, 403: ErrorResponse})
    def get_transaction(self, reference: str) -> Transaction:
        """Get one of your transactions."""
        return self.get_own_transaction(reference)

    @route.post(
        "/{uuid:transaction_id}/refund",
        url_name="request_refund",
        response={200: schema.TransactionSchema, 400: ErrorResponse, 409: ErrorResponse},
        throttle=WriteThrottle(),
    )
    def request_refund(self, transaction_id: UUID, payload: schema.RefundRequestSchema) -> Transaction:
        """Ask for a refund of a completed booking payment.

        The amount follows the event's refund policy and is fixed at request time. Requests
        inside the event's minimum notice window are rejected.
        """
        txn = get_object_or_404(Transaction, pk=transaction_id, user=self.user())
        return refunds.request_refund(txn, self.user(), payload.reason)

    @route.post(
        "/{uuid:transaction_id}/refund/process",
        url_name="process_refund",
        response={200: schema.TransactionSchema, 400: ErrorResponse, 403: ErrorResponse, 409: ErrorResponse},
        throttle=WriteThrottle(),
    )
    def process_refund(self, transaction_id: UUID, payload: schema.RefundProcessSchema) -> Transaction:
        """Approve or reject a refund request. Event organizers and staff only.

        Approval voids the remaining tickets, puts their seats back on sale and sends the
        refund to the payment gateway in the background.
        """
        txn = get_object_or_404(Transaction.objects.select_related("booking__event"), pk=transaction_id)
        if not refunds.can_process_refund(txn, self.user()):
            raise HttpError(403, str(_("You do not have permission to process this refund.")))
        return refunds.process_refund(txn, self.user(), payload.action, payload.reason)
