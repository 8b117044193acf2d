import typing as t

import structlog
from django.dispatch import receiver

from notifications.signals import notification_requested

logger = structlog.get_logger(__name__)


@receiver(notification_requested)
def log_notification(
    sender: t.Any, notification_type: str, user_id: str | None, context: dict[str, t.Any], **kwargs: t.Any
) -> None:
    """Audit trail for every published notification."""
    logger.info("notification_published", notification_type=str(notification_type), user_id=user_id, context=context)
