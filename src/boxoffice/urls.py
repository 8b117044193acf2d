"""URL configuration for the boxoffice project.

Everything public lives under ``/api/`` (see ``api.api``). The Django admin is the
back office for refunds and payouts and is only mounted when ``ADMIN_URL`` is set.
"""

from django.conf import settings
from django.contrib import admin
from django.http import HttpRequest, HttpResponseRedirect
from django.shortcuts import redirect, reverse  # type: ignore[attr-defined]
from django.urls import path

from api.api import api

admin.site.site_header = f"{settings.SITE_NAME} back office"
admin.site.site_title = f"{settings.SITE_NAME} v{settings.VERSION}"
admin.site.index_title = "Events, bookings and payments"


def redirect_to_docs(request: HttpRequest) -> HttpResponseRedirect:
    return redirect(reverse("api:openapi-view"))


urlpatterns = [path("api/", api.urls)]

if settings.ADMIN_URL:  # pragma: no cover
    urlpatterns.append(path(settings.ADMIN_URL, admin.site.urls))

if settings.DEBUG:
    urlpatterns.append(path("", redirect_to_docs, name="redirect_to_docs"))  # type: ignore[arg-type]
