from decimal import Decimal

import pytest
from django.core.exceptions import ValidationError as DjangoValidationError

from payments.service.service_fee import AgreementType, calculate_service_fee


class TestCalculateServiceFee:
    def test_percentage_never_below_minimum(self) -> None:
        quote = calculate_service_fee("1-100")

        assert quote.base_fee == Decimal("50")
        assert quote.amount == Decimal("100.00")
        assert quote.agreement_type == AgreementType.PERCENTAGE

    def test_custom_percentage(self) -> None:
        quote = calculate_service_fee("5001+", AgreementType.PERCENTAGE, Decimal("12.5"))

        assert quote.amount == Decimal("250.00")

    def test_fixed_agreement(self) -> None:
        quote = calculate_service_fee("101-500", AgreementType.FIXED, Decimal("750"))

        assert quote.amount == Decimal("750.00")
        assert quote.currency == "NGN"

    def test_fixed_agreement_needs_amount(self) -> None:
        with pytest.raises(DjangoValidationError):
            calculate_service_fee("101-500", AgreementType.FIXED)

    def test_unknown_range(self) -> None:
        with pytest.raises(DjangoValidationError):
            calculate_service_fee("10-20")
