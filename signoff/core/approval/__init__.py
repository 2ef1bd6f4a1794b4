"""Approval workflow module for Signoff.

Implements the approver registry, the status aggregator and the derived
projections. The orchestrating service lives in
``signoff.core.approval.service``.
"""

from .states import (
    ApprovalStatus,
    Decision,
    EventAction,
    NotificationType,
    TERMINAL_STATES,
)
from .aggregator import ApproverDecision, aggregate

__all__ = [
    "ApprovalStatus",
    "Decision",
    "EventAction",
    "NotificationType",
    "TERMINAL_STATES",
    "ApproverDecision",
    "aggregate",
]
