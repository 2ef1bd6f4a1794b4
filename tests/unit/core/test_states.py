"""Tests for approval state definitions and lookup tables."""

from signoff.core.approval.states import (
    ACCEPTING_STATES,
    OPEN_STATES,
    TERMINAL_STATES,
    ApprovalStatus,
    Decision,
    EventAction,
    NotificationType,
    accepts_decisions,
    event_action_for,
    is_terminal,
    notification_for,
)


class TestApprovalStates:
    """Test approval state definitions."""

    def test_all_states_defined(self):
        """Test that all expected states exist."""
        assert {s.value for s in ApprovalStatus} == {
            "pending", "approved", "rejected", "changes_requested",
        }

    def test_terminal_states(self):
        assert TERMINAL_STATES == {ApprovalStatus.APPROVED, ApprovalStatus.REJECTED}
        assert is_terminal(ApprovalStatus.APPROVED)
        assert not is_terminal(ApprovalStatus.CHANGES_REQUESTED)

    def test_only_pending_accepts_decisions(self):
        """Test that changes_requested freezes decision intake."""
        assert ACCEPTING_STATES == {ApprovalStatus.PENDING}
        assert not accepts_decisions(ApprovalStatus.CHANGES_REQUESTED)
        assert not accepts_decisions(ApprovalStatus.REJECTED)

    def test_open_states_are_not_terminal(self):
        assert OPEN_STATES.isdisjoint(TERMINAL_STATES)
        assert OPEN_STATES | TERMINAL_STATES == set(ApprovalStatus)


class TestLookups:
    """Test the per-kind lookup tables."""

    def test_decision_event_actions(self):
        assert event_action_for(Decision.APPROVED) == EventAction.APPROVED
        assert event_action_for(Decision.REJECTED) == EventAction.REJECTED
        assert event_action_for(Decision.CHANGES_REQUESTED) == EventAction.REQUESTED_CHANGES

    def test_status_notifications(self):
        assert notification_for(ApprovalStatus.PENDING) is None
        assert notification_for(ApprovalStatus.APPROVED) == NotificationType.APPROVAL_COMPLETED
        assert notification_for(ApprovalStatus.REJECTED) == NotificationType.APPROVAL_COMPLETED
        assert notification_for(ApprovalStatus.CHANGES_REQUESTED) == NotificationType.CHANGES_REQUESTED

    def test_enums_compare_to_strings(self):
        """Test that stored string values compare equal to enum members."""
        assert ApprovalStatus.PENDING == "pending"
        assert Decision("changes_requested") is Decision.CHANGES_REQUESTED
