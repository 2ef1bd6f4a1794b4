"""Status aggregation over the approver registry.

The aggregate status depends only on the current set of decisions, never on
the order in which they arrived. That is what makes concurrently committed
decisions safe to reconcile: any transaction that sees every approver row
computes the same status.
"""

from typing import Iterable, List, NamedTuple, Optional, Union

from .states import ApprovalStatus, Decision


class ApproverDecision(NamedTuple):
    """Minimal view of an approver for aggregation."""
    is_required: bool
    decision: Optional[Decision] = None


def _decision_of(approver) -> Optional[Decision]:
    value: Union[Decision, str, None] = approver.decision
    if value is None:
        return None
    return Decision(value)


def aggregate(approvers: Iterable) -> ApprovalStatus:
    """
    Derive a request's status from its approvers.

    Rules, in order:
    1. A required approver rejected -> REJECTED (optional approvers cannot veto)
    2. Anyone requested changes -> CHANGES_REQUESTED
    3. At least one required approver, and all of them approved -> APPROVED
    4. Otherwise -> PENDING

    Args:
        approvers: Objects exposing ``is_required`` and ``decision``
            (ORM rows, schemas or ApproverDecision tuples)

    Returns:
        The aggregate status
    """
    required: List[Optional[Decision]] = []
    any_changes_requested = False

    for approver in approvers:
        decision = _decision_of(approver)
        if approver.is_required:
            required.append(decision)
        if decision == Decision.CHANGES_REQUESTED:
            any_changes_requested = True

    if Decision.REJECTED in required:
        return ApprovalStatus.REJECTED

    if any_changes_requested:
        return ApprovalStatus.CHANGES_REQUESTED

    if required and all(d == Decision.APPROVED for d in required):
        return ApprovalStatus.APPROVED

    return ApprovalStatus.PENDING
