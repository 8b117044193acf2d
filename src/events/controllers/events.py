from uuid import UUID

from django.shortcuts import get_object_or_404
from ninja_extra import api_controller, route

from common.authentication import I18nJWTAuth, OptionalAuth
from common.controllers import UserAwareController
from common.throttling import UserDefaultThrottle, WriteThrottle
from events import models, schema
from events.service import event_service


@api_controller("/events", auth=I18nJWTAuth(), tags=["Events"], throttle=UserDefaultThrottle())
class EventController(UserAwareController):
    @route.post("/", url_name="create_event", response={201: schema.EventSchema}, throttle=WriteThrottle())
    def create_event(self, payload: schema.EventCreateSchema) -> tuple[int, models.Event]:
        """Create a draft event with its ticket types.

        When no ticket types are given a single "General Admission" type is created from
        `price` and `capacity`. Events where every ticket is free cannot be published with
        `/events/{id}/publish`; create them through `/transactions/initialize-service-fee`.
        """
        return 201, event_service.create_event(self.user(), payload)

    @route.get("/{uuid:event_id}", url_name="get_event", response=schema.EventSchema, auth=OptionalAuth())
    def get_event(self, event_id: UUID) -> models.Event:
        """Get an event with its ticket types and live availability.

        Drafts are only visible to their organizer.
        """
        return get_object_or_404(
            models.Event.objects.visible_to(self.maybe_user()).prefetch_related("ticket_types"),
            pk=event_id,
        )

    @route.post(
        "/{uuid:event_id}/publish", url_name="publish_event", response=schema.EventSchema, throttle=WriteThrottle()
    )
    def publish_event(self, event_id: UUID) -> models.Event:
        """Publish one of your draft events so tickets can be bought."""
        event = get_object_or_404(models.Event, pk=event_id)
        return event_service.publish_event(event, self.user())
