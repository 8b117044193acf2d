"""Admin interface for accounts app."""

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin

from accounts.models import BoxOfficeUser


@admin.register(BoxOfficeUser)
class BoxOfficeUserAdmin(UserAdmin):  # type: ignore[type-arg]
    """Admin for the custom user model."""

    list_display = ["username", "email", "preferred_name", "is_staff", "date_joined"]
    search_fields = ["username", "email", "preferred_name", "first_name", "last_name"]
    fieldsets = (
        *UserAdmin.fieldsets,  # type: ignore[misc]
        ("Profile", {"fields": ("preferred_name", "phone_number", "language")}),
    )
