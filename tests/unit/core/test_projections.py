"""Tests for derived projections: overdue, summaries and dashboards."""

from datetime import datetime, timedelta
from uuid import uuid4

from signoff.core.approval.projections import (
    average_completion_days,
    build_dashboard,
    is_overdue,
    summarize,
)
from signoff.core.approval.schemas import (
    ApprovalRequestRead,
    ApproverRead,
    ESignatureRead,
    EventRead,
)
from signoff.core.approval.states import ApprovalStatus, Decision, EventAction

NOW = datetime(2026, 3, 10, 12, 0, 0)


def approver(user_id, decision=None, is_required=True):
    return ApproverRead(
        user_id=user_id,
        role="reviewer",
        is_required=is_required,
        decision=decision,
        e_signature=ESignatureRead(signed=decision is not None),
    )


def request(
    *,
    status=ApprovalStatus.PENDING,
    created_by="creator",
    approvers=None,
    created_at=NOW - timedelta(days=3),
    due_date=None,
    completed_at=None,
):
    return ApprovalRequestRead(
        id=uuid4(),
        subject_type="policy",
        subject_id="pol-1",
        subject_title="Access Policy",
        status=status,
        created_by=created_by,
        created_at=created_at,
        updated_at=created_at,
        due_date=due_date,
        completed_at=completed_at,
        approvers=approvers or [approver("alice")],
    )


class TestOverdue:
    """Test the overdue predicate."""

    def test_no_due_date_never_overdue(self):
        assert not is_overdue(ApprovalStatus.PENDING, None, NOW)

    def test_past_due_and_open(self):
        past = NOW - timedelta(minutes=1)
        assert is_overdue(ApprovalStatus.PENDING, past, NOW)
        assert is_overdue(ApprovalStatus.CHANGES_REQUESTED, past, NOW)

    def test_future_due_date_not_overdue(self):
        assert not is_overdue(ApprovalStatus.PENDING, NOW + timedelta(days=1), NOW)

    def test_terminal_never_overdue(self):
        """Test that completing a request clears the overdue flag."""
        past = NOW - timedelta(days=1)
        assert not is_overdue(ApprovalStatus.APPROVED, past, NOW)
        assert not is_overdue(ApprovalStatus.REJECTED, past, NOW)


class TestSummarize:
    """Test per-request summaries."""

    def test_counts(self):
        r = request(approvers=[
            approver("a", Decision.APPROVED),
            approver("b", Decision.REJECTED, is_required=False),
            approver("c", Decision.CHANGES_REQUESTED),
            approver("d"),
            approver("e"),
        ])
        summary = summarize(r, NOW)

        assert summary.approver_count == 5
        assert summary.approved_count == 1
        assert summary.rejected_count == 1
        assert summary.changes_requested_count == 1
        assert summary.pending_count == 2

    def test_day_counters(self):
        r = request(due_date=NOW + timedelta(days=2, hours=1))
        summary = summarize(r, NOW)

        assert summary.days_since_created == 3
        assert summary.days_until_due == 2
        assert not summary.is_overdue

    def test_days_until_due_negative_when_overdue(self):
        r = request(due_date=NOW - timedelta(days=1, hours=1))
        summary = summarize(r, NOW)

        assert summary.is_overdue
        assert summary.days_until_due < 0

    def test_days_until_due_absent_without_due_date(self):
        assert summarize(request(), NOW).days_until_due is None


class TestDashboard:
    """Test dashboard assembly."""

    def test_average_completion_days(self):
        completed = [
            request(status=ApprovalStatus.APPROVED, created_at=NOW - timedelta(days=4),
                    completed_at=NOW - timedelta(days=2)),
            request(status=ApprovalStatus.REJECTED, created_at=NOW - timedelta(days=4),
                    completed_at=NOW - timedelta(days=3)),
            request(),
        ]
        assert average_completion_days(completed) == 1.5

    def test_average_completion_days_empty(self):
        assert average_completion_days([request()]) == 0.0

    def test_build_dashboard(self):
        mine = request(approvers=[approver("alice"), approver("bob")])
        team = request(created_by="alice", approvers=[approver("carol")],
                       due_date=NOW - timedelta(days=1))
        done = request(
            status=ApprovalStatus.APPROVED,
            approvers=[approver("alice", Decision.APPROVED)],
            created_at=NOW - timedelta(days=10),
            completed_at=NOW - timedelta(days=1),
        )
        old = request(
            status=ApprovalStatus.REJECTED,
            approvers=[approver("dave")],
            created_at=NOW - timedelta(days=30),
            completed_at=NOW - timedelta(days=20),
        )
        activity = [EventRead(
            id=uuid4(), request_id=mine.id, sequence=1, actor_id="creator",
            action=EventAction.CREATED, timestamp=NOW,
        )]

        dashboard = build_dashboard("alice", [mine, team, done, old], activity, NOW)

        assert dashboard.summary.total_approvals == 4
        assert dashboard.summary.pending_approvals == 2
        assert dashboard.summary.overdue_approvals == 1
        assert dashboard.summary.completed_this_week == 1
        assert dashboard.summary.average_approval_time == 9.5
        assert [s.id for s in dashboard.my_approvals] == [mine.id, done.id]
        assert [s.id for s in dashboard.team_approvals] == [team.id]
        assert dashboard.recent_activity == activity
