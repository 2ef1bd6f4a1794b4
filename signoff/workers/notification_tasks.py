"""Celery tasks for notification delivery.

Delivery is at-least-once: a failed webhook call is retried with a delay
until ``notification_max_retries`` is exhausted. Receivers de-duplicate on
the notification key.
"""

from typing import Any, Dict
import logging

from celery import Celery, shared_task
from celery.signals import after_setup_logger

from signoff.core.config import get_settings
from signoff.core.errors import NotificationError
from signoff.core.logger import configure_from_settings
from signoff.services.notifications import (
    LoggingNotificationDispatcher,
    Notification,
    WebhookNotificationDispatcher,
)

logger = logging.getLogger(__name__)
settings = get_settings()

celery_app = Celery(
    'signoff',
    broker=settings.celery_broker,
    backend=settings.celery_backend,
)

celery_app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,
    task_acks_late=True,
    task_routes={
        'signoff.workers.notification_tasks.deliver_notification': {'queue': 'notifications'},
    },
    task_default_queue='default',
)


@after_setup_logger.connect
def _configure_package_logging(**kwargs):
    configure_from_settings(get_settings())


@shared_task(
    bind=True,
    max_retries=settings.notification_max_retries,
    default_retry_delay=settings.notification_retry_delay,
)
def deliver_notification(self, payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Deliver one notification through the configured webhook.

    Args:
        payload: ``Notification.to_payload()`` output

    Returns:
        Delivery summary with the notification key
    """
    notification = Notification.from_payload(payload)
    current = get_settings()

    if current.webhook_url:
        dispatcher = WebhookNotificationDispatcher(
            current.webhook_url,
            timeout=current.webhook_timeout,
            payload_template=current.webhook_payload_template,
        )
    else:
        dispatcher = LoggingNotificationDispatcher()

    try:
        dispatcher.dispatch(notification)
    except NotificationError as e:
        logger.warning(f"Delivery of {notification.key} failed, retrying: {e}")
        raise self.retry(exc=e)

    return {"status": "delivered", "key": notification.key}
