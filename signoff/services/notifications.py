"""Notification dispatch for approval requests.

The approval service hands notifications to a dispatcher strictly after its
transaction commits. Delivery is at-least-once: every notification carries a
deterministic ``key`` that receivers use to drop duplicates.

Handles:
- Approval requested (one per approver, at creation)
- Approval completed (approved or rejected)
- Changes requested
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Tuple
from uuid import UUID

import httpx
from jinja2 import Template

from signoff.core.config import Settings, get_settings
from signoff.core.errors import NotificationError
from signoff.core.approval.states import NotificationType
from signoff.core.timeutil import utc_now

logger = logging.getLogger(__name__)


MESSAGE_TEMPLATES = {
    NotificationType.APPROVAL_REQUESTED: {
        "subject": "[Signoff] Approval requested: {subject_title}",
        "body": """
Your approval is requested:

Subject: {subject_title} ({subject_type} {subject_id})
Requested By: {created_by}
Due: {due_date}

Please review at: {review_url}
        """,
    },
    NotificationType.APPROVAL_COMPLETED: {
        "subject": "[Signoff] {subject_title} was {status}",
        "body": """
An approval request has been completed:

Subject: {subject_title} ({subject_type} {subject_id})
Outcome: {status}

Full history at: {review_url}
        """,
    },
    NotificationType.CHANGES_REQUESTED: {
        "subject": "[Signoff] Changes requested: {subject_title}",
        "body": """
Changes were requested on:

Subject: {subject_title} ({subject_type} {subject_id})

Revise the subject and submit a new approval request.
Details at: {review_url}
        """,
    },
}


@dataclass(frozen=True)
class Notification:
    """Something to tell interested parties about a committed change."""

    request_id: UUID
    type: NotificationType
    recipients: Tuple[str, ...]
    event_sequence: int
    context: Dict[str, Any] = field(default_factory=dict)

    @property
    def key(self) -> str:
        """Idempotency key, stable across redeliveries."""
        return f"{self.request_id}:{self.type.value}:{self.event_sequence}"

    def to_payload(self) -> Dict[str, Any]:
        return {
            "request_id": str(self.request_id),
            "type": self.type.value,
            "recipients": list(self.recipients),
            "event_sequence": self.event_sequence,
            "context": self.context,
        }

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "Notification":
        return cls(
            request_id=UUID(payload["request_id"]),
            type=NotificationType(payload["type"]),
            recipients=tuple(payload.get("recipients", [])),
            event_sequence=int(payload["event_sequence"]),
            context=dict(payload.get("context") or {}),
        )


def render_message(notification: Notification) -> Tuple[str, str]:
    """Render the subject line and body for a notification."""
    template = MESSAGE_TEMPLATES[notification.type]
    context = {
        "subject_title": "N/A",
        "subject_type": "N/A",
        "subject_id": "N/A",
        "created_by": "N/A",
        "due_date": "none",
        "status": "N/A",
        "review_url": "N/A",
    }
    context.update({k: v for k, v in notification.context.items() if v is not None})
    return template["subject"].format(**context), template["body"].format(**context)


class NotificationDispatcher(ABC):
    """Receives notifications after commit."""

    @abstractmethod
    def dispatch(self, notification: Notification) -> None:
        """
        Deliver (or enqueue) a notification.

        Raises:
            NotificationError: Delivery failed
        """


class LoggingNotificationDispatcher(NotificationDispatcher):
    """Writes notifications to the log. Default when nothing else is configured."""

    def dispatch(self, notification: Notification) -> None:
        subject, _ = render_message(notification)
        logger.info(
            "Notification %s for %s -> %s: %s",
            notification.type.value,
            notification.request_id,
            ", ".join(notification.recipients) or "(no recipients)",
            subject,
        )


class WebhookNotificationDispatcher(NotificationDispatcher):
    """POSTs notifications as JSON to a webhook endpoint."""

    def __init__(
        self,
        url: str,
        *,
        timeout: float = 30,
        payload_template: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
        client: Optional[httpx.Client] = None,
    ):
        self.url = url
        self.timeout = timeout
        self.payload_template = payload_template
        self.headers = dict(headers or {})
        self._client = client

    def build_payload(self, notification: Notification) -> Dict[str, Any]:
        """Render the payload from the configured template, or the default shape."""
        if self.payload_template:
            try:
                template = Template(self.payload_template)
                return json.loads(template.render(
                    notification=notification.to_payload(),
                    key=notification.key,
                    **notification.context,
                ))
            except Exception as e:
                logger.warning(f"Failed to render webhook template: {e}")

        subject, body = render_message(notification)
        return {
            "event": notification.type.value,
            "key": notification.key,
            "timestamp": utc_now().isoformat(),
            "request_id": str(notification.request_id),
            "recipients": list(notification.recipients),
            "subject": subject,
            "body": body.strip(),
            "data": notification.context,
        }

    def dispatch(self, notification: Notification) -> None:
        payload = self.build_payload(notification)
        headers = dict(self.headers)
        headers["Content-Type"] = "application/json"
        headers["Idempotency-Key"] = notification.key

        try:
            if self._client is not None:
                response = self._client.post(self.url, json=payload, headers=headers)
                response.raise_for_status()
            else:
                with httpx.Client(timeout=self.timeout) as client:
                    response = client.post(self.url, json=payload, headers=headers)
                    response.raise_for_status()
        except httpx.HTTPError as e:
            raise NotificationError(f"Webhook delivery to {self.url} failed: {e}") from e


class CeleryNotificationDispatcher(NotificationDispatcher):
    """Enqueues notifications for the Celery delivery worker."""

    def dispatch(self, notification: Notification) -> None:
        from signoff.workers.notification_tasks import deliver_notification

        try:
            deliver_notification.delay(notification.to_payload())
        except Exception as e:
            raise NotificationError(f"Failed to enqueue notification {notification.key}: {e}") from e


def build_dispatcher(settings: Optional[Settings] = None) -> NotificationDispatcher:
    """Build the dispatcher selected by ``notification_backend``."""
    settings = settings or get_settings()
    backend = settings.notification_backend.lower()

    if backend == "webhook":
        if not settings.webhook_url:
            raise ValueError("notification_backend=webhook requires webhook_url")
        return WebhookNotificationDispatcher(
            settings.webhook_url,
            timeout=settings.webhook_timeout,
            payload_template=settings.webhook_payload_template,
        )
    if backend == "celery":
        return CeleryNotificationDispatcher()
    if backend == "log":
        return LoggingNotificationDispatcher()

    raise ValueError(f"Unknown notification backend: {settings.notification_backend}")


def format_due_date(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None
