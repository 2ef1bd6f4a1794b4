"""Read-only projections over approval requests and events.

Nothing here is stored. Every value is recomputed from the request rows on
each read, so a projection can never go stale.
"""

from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Sequence

from .schemas import (
    ApprovalRequestRead,
    ApprovalSummary,
    Dashboard,
    DashboardSummary,
    EventRead,
)
from .states import ApprovalStatus, Decision, OPEN_STATES


def is_overdue(status: ApprovalStatus, due_date: Optional[datetime], now: datetime) -> bool:
    """A request is overdue when its due date has passed and it is still open."""
    if due_date is None:
        return False
    return now > due_date and ApprovalStatus(status) in OPEN_STATES


def summarize(request: ApprovalRequestRead, now: datetime) -> ApprovalSummary:
    """Build the per-request summary used by lists and dashboards."""
    decisions = [a.decision for a in request.approvers]

    days_until_due = None
    if request.due_date is not None:
        days_until_due = (request.due_date - now).days

    return ApprovalSummary(
        id=request.id,
        subject_type=request.subject_type,
        subject_id=request.subject_id,
        subject_title=request.subject_title,
        status=request.status,
        created_by=request.created_by,
        approver_count=len(decisions),
        approved_count=decisions.count(Decision.APPROVED),
        rejected_count=decisions.count(Decision.REJECTED),
        pending_count=decisions.count(None),
        changes_requested_count=decisions.count(Decision.CHANGES_REQUESTED),
        created_at=request.created_at,
        due_date=request.due_date,
        completed_at=request.completed_at,
        is_overdue=is_overdue(request.status, request.due_date, now),
        days_since_created=max((now - request.created_at).days, 0),
        days_until_due=days_until_due,
    )


def average_completion_days(requests: Iterable[ApprovalRequestRead]) -> float:
    """Mean time from creation to completion in days, rounded to one decimal."""
    durations = [
        (r.completed_at - r.created_at).total_seconds()
        for r in requests
        if r.completed_at is not None
    ]
    if not durations:
        return 0.0
    return round(sum(durations) / len(durations) / 86400, 1)


def build_dashboard_summary(
    summaries: Sequence[ApprovalSummary],
    requests: Sequence[ApprovalRequestRead],
    now: datetime,
    *,
    completed_window_days: int = 7,
) -> DashboardSummary:
    window_start = now - timedelta(days=completed_window_days)
    return DashboardSummary(
        total_approvals=len(summaries),
        pending_approvals=sum(1 for s in summaries if s.status == ApprovalStatus.PENDING),
        overdue_approvals=sum(1 for s in summaries if s.is_overdue),
        completed_this_week=sum(
            1 for s in summaries
            if s.completed_at is not None and s.completed_at > window_start
        ),
        average_approval_time=average_completion_days(requests),
    )


def build_dashboard(
    user_id: str,
    requests: Sequence[ApprovalRequestRead],
    recent_events: List[EventRead],
    now: datetime,
    *,
    completed_window_days: int = 7,
) -> Dashboard:
    """
    Assemble a user's dashboard from scratch.

    Args:
        user_id: User the dashboard is for
        requests: Every request visible to the dashboard, newest first
        recent_events: Latest events across all requests, newest first
        now: Reference time for overdue / window calculations
        completed_window_days: Size of the "completed this week" window

    Returns:
        Dashboard with summary counts, the user's approvals (as approver),
        their team approvals (as creator) and the recent activity feed
    """
    summaries = [summarize(r, now) for r in requests]
    by_id = {s.id: s for s in summaries}

    my_approvals = [
        by_id[r.id] for r in requests
        if any(a.user_id == user_id for a in r.approvers)
    ]
    team_approvals = [by_id[r.id] for r in requests if r.created_by == user_id]

    return Dashboard(
        summary=build_dashboard_summary(
            summaries, requests, now, completed_window_days=completed_window_days,
        ),
        my_approvals=my_approvals,
        team_approvals=team_approvals,
        recent_activity=list(recent_events),
    )
