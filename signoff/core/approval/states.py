"""Approval request states, decisions and event kinds.

State Machine Diagram:

    ┌──────────┐
    │ PENDING  │ ← Initial state (request created)
    └────┬─────┘
         │  (status is derived from the approver decisions, never set directly)
         ├──────────────────┬─────────────────────┐
         │                  │                     │
    ┌────▼─────┐      ┌─────▼────┐      ┌─────────▼─────────┐
    │ APPROVED │      │ REJECTED │      │ CHANGES_REQUESTED │
    └──────────┘      └──────────┘      └───────────────────┘
      terminal          terminal          frozen; the revised subject
                                          is resubmitted as a new request

Every kind is a closed enumeration. Lookup tables below map each kind to
the things derived from it and are checked for completeness at import time.
"""

from enum import Enum
from typing import Dict, Optional, Set


class ApprovalStatus(str, Enum):
    """Aggregate status of an approval request."""

    PENDING = "pending"                      # Awaiting decisions
    APPROVED = "approved"                    # All required approvers approved
    REJECTED = "rejected"                    # A required approver rejected
    CHANGES_REQUESTED = "changes_requested"  # Someone asked for a revision


class Decision(str, Enum):
    """A single approver's decision."""

    APPROVED = "approved"
    REJECTED = "rejected"
    CHANGES_REQUESTED = "changes_requested"


class EventAction(str, Enum):
    """Things that can happen to an approval request."""

    CREATED = "created"
    APPROVED = "approved"
    REJECTED = "rejected"
    REQUESTED_CHANGES = "requested_changes"
    COMMENT_ADDED = "comment_added"
    DUE_DATE_UPDATED = "due_date_updated"
    STATUS_CHANGED = "status_changed"


class NotificationType(str, Enum):
    """Notifications handed to the dispatcher after commit."""

    APPROVAL_REQUESTED = "approval_requested"
    APPROVAL_COMPLETED = "approval_completed"
    CHANGES_REQUESTED = "changes_requested"


# Terminal states (no further decisions, ever)
TERMINAL_STATES: Set[ApprovalStatus] = {
    ApprovalStatus.APPROVED,
    ApprovalStatus.REJECTED,
}

# States in which decisions are accepted
ACCEPTING_STATES: Set[ApprovalStatus] = {
    ApprovalStatus.PENDING,
}

# States that still await action and can therefore become overdue
OPEN_STATES: Set[ApprovalStatus] = {
    ApprovalStatus.PENDING,
    ApprovalStatus.CHANGES_REQUESTED,
}

# Event recorded for each decision
DECISION_ACTIONS: Dict[Decision, EventAction] = {
    Decision.APPROVED: EventAction.APPROVED,
    Decision.REJECTED: EventAction.REJECTED,
    Decision.CHANGES_REQUESTED: EventAction.REQUESTED_CHANGES,
}

# Notification sent when a request reaches a status (None = nothing to send)
STATUS_NOTIFICATIONS: Dict[ApprovalStatus, Optional[NotificationType]] = {
    ApprovalStatus.PENDING: None,
    ApprovalStatus.APPROVED: NotificationType.APPROVAL_COMPLETED,
    ApprovalStatus.REJECTED: NotificationType.APPROVAL_COMPLETED,
    ApprovalStatus.CHANGES_REQUESTED: NotificationType.CHANGES_REQUESTED,
}

assert set(DECISION_ACTIONS) == set(Decision), "every decision needs an event action"
assert set(STATUS_NOTIFICATIONS) == set(ApprovalStatus), "every status needs a notification entry"


def is_terminal(status: ApprovalStatus) -> bool:
    """Check if a status is terminal."""
    return status in TERMINAL_STATES


def accepts_decisions(status: ApprovalStatus) -> bool:
    """Check if decisions may still be submitted in this status."""
    return status in ACCEPTING_STATES


def event_action_for(decision: Decision) -> EventAction:
    """Get the event action recorded for a decision."""
    return DECISION_ACTIONS[decision]


def notification_for(status: ApprovalStatus) -> Optional[NotificationType]:
    """Get the notification owed when a request enters a status."""
    return STATUS_NOTIFICATIONS[status]
