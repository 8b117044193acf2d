import typing as t

import structlog
from django.conf import settings
from django.contrib.auth.models import AnonymousUser
from django.http import HttpRequest
from django.utils import translation
from ninja_jwt.authentication import JWTAuth

logger = structlog.get_logger(__name__)


class I18nJWTAuth(JWTAuth):
    """JWT authentication that activates the buyer's preferred language.

    Business-rule messages (sold out, refund window closed, ...) are lazy
    translations, so activating the language before the handler runs is
    enough for every error body to come back localized.
    """

    def authenticate(self, request: HttpRequest, token: str) -> t.Any:
        user = super().authenticate(request, token)
        if language := getattr(user, "language", None):
            translation.activate(language)
            request.LANGUAGE_CODE = language
        return user


class OptionalAuth(I18nJWTAuth):
    """Authenticate when a bearer token is sent, fall back to AnonymousUser otherwise.

    Used on catalogue reads: anyone can see a published event, while its organizer
    can also see it as a draft.
    """

    def __call__(self, request: HttpRequest) -> t.Any | None:
        auth_value = request.headers.get(self.header)
        if not auth_value:
            request.user = AnonymousUser()
            return request.user
        scheme, _, token = auth_value.partition(" ")
        if scheme.lower() != self.openapi_scheme:
            if settings.DEBUG:
                logger.error("unexpected_auth_scheme", scheme=scheme)
            return None
        return self.authenticate(request, token)
