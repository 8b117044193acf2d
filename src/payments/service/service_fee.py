"""Upfront service fee charged to organizers of free events."""

import enum
import typing as t
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.utils.translation import gettext_lazy as _


class AgreementType(enum.StrEnum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


@dataclass(frozen=True)
class ServiceFeeQuote:
    attendance_range: str
    base_fee: Decimal
    agreement_type: AgreementType
    amount: Decimal
    currency: str


def attendance_ranges() -> dict[str, Decimal]:
    return t.cast(dict[str, Decimal], settings.SERVICE_FEE_ATTENDANCE_RANGES)


def calculate_service_fee(
    attendance_range: str,
    agreement_type: AgreementType = AgreementType.PERCENTAGE,
    agreement_amount: Decimal | None = None,
) -> ServiceFeeQuote:
    """Price the service fee for an expected attendance range.

    A percentage agreement charges ``agreement_amount`` percent (``SERVICE_FEE_PERCENT``
    when omitted) of the range's base fee, never less than ``SERVICE_FEE_MINIMUM``.
    A fixed agreement charges its amount as is.
    """
    ranges = attendance_ranges()
    if attendance_range not in ranges:
        raise DjangoValidationError(
            {"attendance_range": [_("Unknown attendance range: {value}.").format(value=attendance_range)]}
        )
    base_fee = ranges[attendance_range]

    match agreement_type:
        case AgreementType.FIXED:
            if agreement_amount is None or agreement_amount <= 0:
                raise DjangoValidationError({"agreement": [_("A fixed agreement needs a positive amount.")]})
            amount = agreement_amount
        case AgreementType.PERCENTAGE:
            percent = agreement_amount if agreement_amount is not None else settings.SERVICE_FEE_PERCENT
            amount = max(settings.SERVICE_FEE_MINIMUM, base_fee * percent / Decimal(100))

    return ServiceFeeQuote(
        attendance_range=attendance_range,
        base_fee=base_fee,
        agreement_type=AgreementType(agreement_type),
        amount=amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP),
        currency=settings.DEFAULT_CURRENCY,
    )
