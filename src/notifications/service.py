import typing as t

import structlog
from django.db import transaction

from notifications.enums import NotificationType
from notifications.signals import notification_requested

logger = structlog.get_logger(__name__)


def _dispatch(notification_type: NotificationType, user_id: str | None, context: dict[str, t.Any]) -> None:
    results = notification_requested.send_robust(
        sender=NotificationType, notification_type=notification_type, user_id=user_id, context=context
    )
    for receiver, result in results:
        if isinstance(result, Exception):
            logger.error(
                "notification_receiver_failed",
                notification_type=notification_type,
                receiver=getattr(receiver, "__qualname__", repr(receiver)),
                error=str(result),
            )


def publish(notification_type: NotificationType, *, user_id: t.Any = None, **context: t.Any) -> None:
    """Publish a notification once the surrounding database transaction commits.

    Subscribers never run inside the state transition that triggered them, so a
    failing channel cannot roll back a committed payment or booking change.
    """
    payload = {key: str(value) if value is not None else None for key, value in context.items()}
    recipient = str(user_id) if user_id is not None else None
    transaction.on_commit(lambda: _dispatch(notification_type, recipient, payload))
