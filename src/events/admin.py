"""Admin classes for events, ticket types, bookings and tickets.

Counters and inventory are read-only here: they only ever move through the
booking service's conditional updates.
"""

import typing as t

from django.contrib import admin
from django.urls import reverse
from django.utils.html import format_html

from events import models


class UserLinkMixin:
    """Mixin to add a link to a user."""

    def user_link(self, obj: t.Any) -> str:
        user = getattr(obj, "user", getattr(obj, "organizer", None))
        url = reverse("admin:accounts_boxofficeuser_change", args=[user.id])  # type: ignore[union-attr]
        return format_html('<a href="{}">{}</a>', url, user.username)  # type: ignore[union-attr]

    user_link.short_description = "User"  # type: ignore[attr-defined]


class EventLinkMixin:
    """Mixin to add a link to an event."""

    def event_link(self, obj: t.Any) -> str | None:
        if not getattr(obj, "event", None):
            return None
        url = reverse("admin:events_event_change", args=[obj.event.id])
        return format_html('<a href="{}">{}</a>', url, obj.event.title)

    event_link.short_description = "Event"  # type: ignore[attr-defined]


class TicketTypeInline(admin.TabularInline):  # type: ignore[type-arg]
    model = models.TicketType
    extra = 0
    fields = ["name", "price", "capacity", "available_tickets"]
    readonly_fields = ["available_tickets"]


class BookingItemInline(admin.TabularInline):  # type: ignore[type-arg]
    model = models.BookingItem
    extra = 0
    can_delete = False
    readonly_fields = ["ticket_type", "ticket_type_name", "quantity", "unit_price", "subtotal"]


@admin.register(models.Event)
class EventAdmin(admin.ModelAdmin, UserLinkMixin):  # type: ignore[type-arg]
    list_display = ["title", "user_link", "start", "status", "service_fee_status", "tickets_sold", "revenue"]
    list_filter = ["status", "refund_policy", "service_fee_status"]
    search_fields = ["title", "venue", "organizer__email"]
    readonly_fields = ["tickets_sold", "revenue", "published_at", "service_fee_transaction"]
    autocomplete_fields = ["organizer"]
    inlines = [TicketTypeInline]


@admin.register(models.TicketType)
class TicketTypeAdmin(admin.ModelAdmin, EventLinkMixin):  # type: ignore[type-arg]
    list_display = ["name", "event_link", "price", "capacity", "available_tickets"]
    search_fields = ["name", "event__title"]
    readonly_fields = ["available_tickets"]


@admin.register(models.Booking)
class BookingAdmin(admin.ModelAdmin, UserLinkMixin, EventLinkMixin):  # type: ignore[type-arg]
    list_display = ["order_number", "user_link", "event_link", "status", "payment_status", "total", "expires_at"]
    list_filter = ["status", "payment_status"]
    search_fields = ["order_number", "user__email", "event__title"]
    readonly_fields = [
        "order_number",
        "subtotal",
        "service_fee",
        "tax",
        "discount",
        "total",
        "event_snapshot",
        "customer_info",
        "tickets_minted",
        "refund_amount",
    ]
    inlines = [BookingItemInline]


@admin.register(models.Ticket)
class TicketAdmin(admin.ModelAdmin, UserLinkMixin, EventLinkMixin):  # type: ignore[type-arg]
    list_display = ["ticket_number", "user_link", "event_link", "status", "checked_in_at"]
    list_filter = ["status"]
    search_fields = ["ticket_number", "user__email", "booking__order_number"]
    readonly_fields = ["ticket_number", "booking", "price", "checked_in_at", "checked_in_by", "transferred_from"]
