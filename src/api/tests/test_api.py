from unittest.mock import patch

import pytest
from django.conf import settings
from django.test.client import Client
from django.urls import reverse

from api.exception_handlers import obfuscate

pytestmark = pytest.mark.django_db


def test_version(client: Client) -> None:
    response = client.get(reverse("api:version"))

    assert response.status_code == 200
    assert response.json() == {"version": settings.VERSION}


def test_healthcheck(client: Client) -> None:
    response = client.get(reverse("api:healthcheck"))

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_unexpected_errors_become_500(user_client: Client) -> None:
    with patch("events.controllers.tickets.models.Ticket.objects.with_event", side_effect=RuntimeError("boom")):
        response = user_client.get(reverse("api:my_tickets"))

    assert response.status_code == 500
    assert response.json()["detail"] == "Internal Server Error."


def test_obfuscate_hides_secrets() -> None:
    headers = {"Authorization": "Bearer abc", "X-Signature": "deadbeef", "Accept": "application/json"}

    cleaned = obfuscate(headers)

    assert cleaned["Authorization"] == "********"
    assert cleaned["X-Signature"] == "********"
    assert cleaned["Accept"] == "application/json"
