"""Celery workers for Signoff."""

from signoff.workers.notification_tasks import celery_app, deliver_notification

__all__ = [
    "celery_app",
    "deliver_notification",
]
