"""
Project-wide fixtures for users, API clients, events and the payment gateway.
"""

import secrets
import string
import typing as t
from datetime import datetime, timedelta
from decimal import Decimal

import faker
import pytest
from django.core.cache import cache
from django.test.client import Client
from django.utils import timezone
from ninja_jwt.tokens import RefreshToken
from pytest import MonkeyPatch

from accounts.models import BoxOfficeUser
from events.models import Booking, Event, TicketType
from events.service.booking_service import PurchaseLine, create_booking
from payments.models import Transaction
from payments.service.checkout import initialize_transaction
from payments.testing import FakeGateway


@pytest.fixture(autouse=True)
def increase_rate_limit(monkeypatch: MonkeyPatch) -> None:
    """Increase the rate limits so tests are never throttled."""
    for throttle in (
        "AnonDefaultThrottle",
        "UserDefaultThrottle",
        "WriteThrottle",
        "PurchaseThrottle",
        "WebhookThrottle",
    ):
        monkeypatch.setattr(f"common.throttling.{throttle}.rate", "1000/min")


@pytest.fixture(autouse=True)
def enable_celery_eager_mode(settings: t.Any) -> None:
    """Enable Celery eager mode for tests so tasks execute synchronously."""
    settings.CELERY_TASK_ALWAYS_EAGER = True
    settings.CELERY_TASK_EAGER_PROPAGATES = True


@pytest.fixture(autouse=True)
def clear_cache() -> None:
    """Throttle counters live in the cache; start every test from a clean slate."""
    cache.clear()


@pytest.fixture(autouse=True)
def fake_gateway(monkeypatch: MonkeyPatch) -> FakeGateway:
    """Every test talks to the in-memory gateway unless it builds a real one explicitly."""
    gateway = FakeGateway()
    monkeypatch.setattr("payments.gateways.get_gateway", lambda name=None: gateway)
    return gateway


class BoxOfficeUserFactory:
    """Factory for creating BoxOfficeUser instances for testing."""

    fake = faker.Faker()

    def create_user(self, **kwargs: t.Any) -> BoxOfficeUser:
        username = kwargs.pop(
            "username", "".join(secrets.choice(string.ascii_lowercase) for _ in range(8)) + "@user.test"
        )
        email = kwargs.pop("email", username + ("@test.com" if "@" not in username else ""))
        password = kwargs.pop("password", "password")
        first_name = kwargs.pop("first_name", self.fake.first_name())
        last_name = kwargs.pop("last_name", self.fake.last_name())
        return BoxOfficeUser.objects.create_user(
            username=username,
            email=email,
            password=password,
            first_name=first_name,
            last_name=last_name,
            **kwargs,
        )

    def __call__(self, **kwargs: t.Any) -> BoxOfficeUser:
        return self.create_user(**kwargs)


@pytest.fixture
def user_factory() -> BoxOfficeUserFactory:
    return BoxOfficeUserFactory()


@pytest.fixture
def user(user_factory: BoxOfficeUserFactory) -> BoxOfficeUser:
    return user_factory()


@pytest.fixture
def other_user(user_factory: BoxOfficeUserFactory) -> BoxOfficeUser:
    return user_factory()


@pytest.fixture
def organizer(user_factory: BoxOfficeUserFactory) -> BoxOfficeUser:
    return user_factory()


@pytest.fixture
def staff_user(user_factory: BoxOfficeUserFactory) -> BoxOfficeUser:
    return user_factory(is_staff=True)


def _client_for(user: BoxOfficeUser) -> Client:
    refresh = RefreshToken.for_user(user)
    return Client(HTTP_AUTHORIZATION=f"Bearer {str(refresh.access_token)}")  # type: ignore[attr-defined]


@pytest.fixture
def user_client(user: BoxOfficeUser) -> Client:
    return _client_for(user)


@pytest.fixture
def other_client(other_user: BoxOfficeUser) -> Client:
    return _client_for(other_user)


@pytest.fixture
def organizer_client(organizer: BoxOfficeUser) -> Client:
    return _client_for(organizer)


@pytest.fixture
def staff_client(staff_user: BoxOfficeUser) -> Client:
    return _client_for(staff_user)


@pytest.fixture
def next_month() -> datetime:
    return timezone.now() + timedelta(days=30)


@pytest.fixture
def event(organizer: BoxOfficeUser, next_month: datetime) -> Event:
    """A published event a month out with a full refund policy."""
    return Event.objects.create(
        organizer=organizer,
        title="Summer Concert",
        venue="Main Hall",
        start=next_month,
        status=Event.EventStatus.PUBLISHED,
        published_at=timezone.now(),
        currency="NGN",
        refund_policy=Event.RefundPolicy.FULL,
        refund_min_days_before_event=7,
    )


@pytest.fixture
def ticket_type(event: Event) -> TicketType:
    return TicketType.objects.create(event=event, name="Regular", price=Decimal("1000.00"), capacity=10)


@pytest.fixture
def last_seat(event: Event) -> TicketType:
    """A ticket type with a single unit of capacity."""
    return TicketType.objects.create(event=event, name="Regular", price=Decimal("1000.00"), capacity=1)


@pytest.fixture
def booking(user: BoxOfficeUser, event: Event, ticket_type: TicketType) -> Booking:
    """A pending booking for two Regular tickets (2000.00 plus the 3% platform fee)."""
    return create_booking(user, event, [PurchaseLine(ticket_type="Regular", quantity=2)])


@pytest.fixture
def booking_transaction(user: BoxOfficeUser, booking: Booking) -> Transaction:
    """The pending gateway transaction paying for ``booking``."""
    return initialize_transaction(user, booking)
