"""Services surrounding the approval engine."""

from signoff.services.notifications import (
    Notification,
    NotificationDispatcher,
    LoggingNotificationDispatcher,
    WebhookNotificationDispatcher,
    CeleryNotificationDispatcher,
    build_dispatcher,
)

__all__ = [
    "Notification",
    "NotificationDispatcher",
    "LoggingNotificationDispatcher",
    "WebhookNotificationDispatcher",
    "CeleryNotificationDispatcher",
    "build_dispatcher",
]
