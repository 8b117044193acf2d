from datetime import timedelta

from decouple import config

from .base import SECRET_KEY

JWT_ALGORITHM = config("JWT_ALGORITHM", default="HS256")
JWT_AUDIENCE = config("JWT_AUDIENCE", default="boxoffice")

# Tokens come from ninja_jwt's stock pair/refresh controller; no blacklist app is installed.
NINJA_JWT = {
    "ACCESS_TOKEN_LIFETIME": timedelta(minutes=config("ACCESS_TOKEN_LIFETIME_MINUTES", default=30, cast=int)),
    "REFRESH_TOKEN_LIFETIME": timedelta(days=config("REFRESH_TOKEN_LIFETIME_DAYS", default=7, cast=int)),
    "ROTATE_REFRESH_TOKENS": False,
    "ALGORITHM": JWT_ALGORITHM,
    "SIGNING_KEY": SECRET_KEY,
    "AUDIENCE": JWT_AUDIENCE,
    "USER_ID_FIELD": "id",
}

THROTTLE_RATES = {
    "anon_default": config("THROTTLE_ANON_RATE", default="60/min"),
    "user_default": config("THROTTLE_USER_RATE", default="120/min"),
    "write": config("THROTTLE_WRITE_RATE", default="60/min"),
    "purchase": config("THROTTLE_PURCHASE_RATE", default="20/min"),
    "webhook": config("THROTTLE_WEBHOOK_RATE", default="600/min"),
}

NINJA_EXTRA = {
    "THROTTLE_RATES": {
        "user": THROTTLE_RATES["user_default"],
        "anon": THROTTLE_RATES["anon_default"],
    },
    "NUM_PROXIES": config("NUM_PROXIES", default=None, cast=lambda v: int(v) if v else None),
}
