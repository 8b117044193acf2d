import typing as t

from django.contrib.auth.models import AnonymousUser
from ninja_extra import ControllerBase

from accounts.models import BoxOfficeUser


class UserAwareController(ControllerBase):
    def maybe_user(self) -> BoxOfficeUser | AnonymousUser:
        """Get the user for this request."""
        return t.cast(BoxOfficeUser | AnonymousUser, self.context.request.user)  # type: ignore[union-attr]

    def user(self) -> BoxOfficeUser:
        """Get the user for this request."""
        return t.cast(BoxOfficeUser, self.context.request.user)  # type: ignore[union-attr]
