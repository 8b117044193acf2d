import re
import typing as t
import uuid

from django.conf import settings
from django.contrib.auth.models import AbstractUser, UserManager
from django.db import models


class BoxOfficeUserQueryset(models.QuerySet["BoxOfficeUser"]):
    """Queryset for BoxOfficeUser."""


class BoxOfficeUserManager(UserManager["BoxOfficeUser"]):
    def get_queryset(self) -> BoxOfficeUserQueryset:
        """Get queryset for BoxOfficeUser."""
        return BoxOfficeUserQueryset(self.model)

    def get_by_email(self, email: str) -> "BoxOfficeUser":
        """Case-insensitive lookup by e-mail address."""
        return self.get_queryset().get(email__iexact=email.strip())


class BoxOfficeUser(AbstractUser):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    preferred_name = models.CharField(db_index=True, max_length=255, blank=True, help_text="Preferred name")
    phone_number = models.CharField(max_length=20, blank=True, help_text="Phone number")
    language = models.CharField(
        max_length=7,
        choices=settings.LANGUAGES,
        default=settings.LANGUAGE_CODE,
        db_index=True,
        help_text="User's preferred language",
    )

    objects = BoxOfficeUserManager()  # type: ignore[misc]

    class Meta:
        ordering = ["username"]

    def save(self, *args: t.Any, **kwargs: t.Any) -> None:
        """Normalize the e-mail address before saving."""
        if self.email:
            self.email = self.email.strip().lower()
        super().save(*args, **kwargs)

    @property
    def display_name(self) -> str:
        """Display name."""
        return self.get_display_name()

    def get_display_name(self) -> str:
        """Returns the user's preferred name, or their full name as a fallback."""
        return (
            self.preferred_name or self.get_full_name() or re.sub(r"(\W|_)+", " ", self.username.split("@")[0]).title()
        )
