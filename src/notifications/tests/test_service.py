import typing as t
from unittest.mock import MagicMock, patch

import pytest

from notifications.enums import NotificationType
from notifications.service import publish
from notifications.signals import notification_requested

pytestmark = pytest.mark.django_db


class TestPublish:
    def test_dispatch_waits_for_commit(self, django_capture_on_commit_callbacks: t.Any) -> None:
        handler = MagicMock()
        notification_requested.connect(handler)
        try:
            with django_capture_on_commit_callbacks(execute=False) as callbacks:
                publish(NotificationType.BOOKING_CONFIRMED, user_id="u-1", booking_id="b-1")

            handler.assert_not_called()
            callbacks[0]()
        finally:
            notification_requested.disconnect(handler)

        handler.assert_called_once()
        kwargs = handler.call_args.kwargs
        assert kwargs["notification_type"] == NotificationType.BOOKING_CONFIRMED
        assert kwargs["user_id"] == "u-1"
        assert kwargs["context"] == {"booking_id": "b-1"}

    def test_failing_receiver_does_not_propagate(self, django_capture_on_commit_callbacks: t.Any) -> None:
        def broken(**kwargs: t.Any) -> None:
            raise RuntimeError("smtp down")

        notification_requested.connect(broken)
        try:
            with patch("notifications.service.logger") as mock_logger:
                with django_capture_on_commit_callbacks(execute=True):
                    publish(NotificationType.PAYMENT_FAILED, user_id=None, reference="TXN-1")
        finally:
            notification_requested.disconnect(broken)

        mock_logger.error.assert_called_once()
        assert mock_logger.error.call_args.kwargs["error"] == "smtp down"
