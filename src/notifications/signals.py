"""Publish interface for domain notifications.

Delivery channels (e-mail, push, websockets) subscribe to ``notification_requested``.
Expected kwargs:
  - notification_type: NotificationType value
  - user_id: str | None, the recipient
  - context: JSON-serializable dict describing the change
"""

from django.dispatch import Signal

notification_requested = Signal()
