from decimal import Decimal

from decouple import config

PAYMENT_GATEWAY = config("PAYMENT_GATEWAY", default="paystack")
DEFAULT_CURRENCY = config("DEFAULT_CURRENCY", default="NGN")
DEFAULT_PLATFORM_FEE_PERCENT = config("DEFAULT_PLATFORM_FEE_PERCENT", cast=Decimal, default="3.00")
DEFAULT_TAX_PERCENT = config("DEFAULT_TAX_PERCENT", cast=Decimal, default="0")

PAYSTACK_SECRET_KEY = config("PAYSTACK_SECRET_KEY", default="sk_test_...")
PAYSTACK_BASE_URL = config("PAYSTACK_BASE_URL", default="https://api.paystack.co")
PAYSTACK_CHANNELS = config("PAYSTACK_CHANNELS", default="card,bank,ussd,bank_transfer").split(",")

STRIPE_SECRET_KEY = config("STRIPE_SECRET_KEY", default="sk_test_...")
STRIPE_WEBHOOK_SECRET = config("STRIPE_WEBHOOK_SECRET", default="whsec_...")

PAYMENT_WEBHOOK_SIGNATURE_HEADER = config("PAYMENT_WEBHOOK_SIGNATURE_HEADER", default="X-Signature")
PAYMENT_CALLBACK_URL = config("PAYMENT_CALLBACK_URL", default="http://localhost:3000/payments/callback")

PAYMENT_GATEWAY_CONNECT_TIMEOUT = config("PAYMENT_GATEWAY_CONNECT_TIMEOUT", cast=float, default=5.0)
PAYMENT_GATEWAY_READ_TIMEOUT = config("PAYMENT_GATEWAY_READ_TIMEOUT", cast=float, default=20.0)
PAYMENT_GATEWAY_MAX_ATTEMPTS = config("PAYMENT_GATEWAY_MAX_ATTEMPTS", cast=int, default=3)

# Note: pending transactions older than this are re-verified by the reconciliation sweep
PAYMENT_DEFAULT_EXPIRY_MINUTES = config("PAYMENT_DEFAULT_EXPIRY_MINUTES", cast=int, default=45)

SERVICE_FEE_PERCENT = config("SERVICE_FEE_PERCENT", cast=Decimal, default="5")
SERVICE_FEE_MINIMUM = config("SERVICE_FEE_MINIMUM", cast=Decimal, default="100")
SERVICE_FEE_ATTENDANCE_RANGES = {
    "1-100": Decimal("50"),
    "101-500": Decimal("200"),
    "501-1000": Decimal("500"),
    "1001-5000": Decimal("1000"),
    "5001+": Decimal("2000"),
}
