"""Command inputs and read models for the approval workflow.

Inputs are validated with pydantic before anything touches the store.
Read models are detached snapshots built from ORM rows inside the
transaction that loaded them.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from signoff.core.timeutil import to_naive_utc
from .states import ApprovalStatus, Decision, EventAction


def _require_text(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("must not be empty")
    return value


# Inputs

class SubjectIn(BaseModel):
    """The artifact an approval request is about."""
    type: str
    id: str
    title: str
    version: Optional[str] = None

    @field_validator("type", "id", "title")
    @classmethod
    def not_blank(cls, value: str) -> str:
        return _require_text(value)


class ApproverIn(BaseModel):
    user_id: str
    role: str = "approver"
    is_required: bool = True
    name: Optional[str] = None
    email: Optional[str] = None

    @field_validator("user_id", "role")
    @classmethod
    def not_blank(cls, value: str) -> str:
        return _require_text(value)


class ESignatureIn(BaseModel):
    """Proof of intent captured alongside a decision."""
    signed: bool = True
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


class CreateApprovalCommand(BaseModel):
    subject: SubjectIn
    approvers: List[ApproverIn]
    due_date: Optional[datetime] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    comment: Optional[str] = None

    @field_validator("due_date")
    @classmethod
    def normalize_due_date(cls, value: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(value)


class DecisionCommand(BaseModel):
    decision: Decision
    comment: Optional[str] = None
    e_signature: Optional[ESignatureIn] = None


class CommentCommand(BaseModel):
    text: str
    internal: bool = False

    @field_validator("text")
    @classmethod
    def not_blank(cls, value: str) -> str:
        return _require_text(value)


# Read models

class ESignatureRead(BaseModel):
    signed: bool
    signed_at: Optional[datetime] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


class ApproverRead(BaseModel):
    user_id: str
    user_name: Optional[str] = None
    user_email: Optional[str] = None
    role: str
    is_required: bool
    decision: Optional[Decision] = None
    decided_at: Optional[datetime] = None
    comment: Optional[str] = None
    e_signature: ESignatureRead

    @classmethod
    def from_model(cls, approver) -> "ApproverRead":
        return cls(
            user_id=approver.user_id,
            user_name=approver.user_name,
            user_email=approver.user_email,
            role=approver.role,
            is_required=approver.is_required,
            decision=approver.decision,
            decided_at=approver.decided_at,
            comment=approver.comment,
            e_signature=ESignatureRead(
                signed=approver.signed,
                signed_at=approver.signed_at,
                ip_address=approver.signature_ip_address,
                user_agent=approver.signature_user_agent,
            ),
        )


class EventRead(BaseModel):
    id: UUID
    request_id: UUID
    sequence: int
    actor_id: str
    actor_name: Optional[str] = None
    actor_email: Optional[str] = None
    action: EventAction
    comment: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime

    @classmethod
    def from_model(cls, event) -> "EventRead":
        return cls(
            id=event.id,
            request_id=event.request_id,
            sequence=event.sequence,
            actor_id=event.actor_id,
            actor_name=event.actor_name,
            actor_email=event.actor_email,
            action=event.action,
            comment=event.comment,
            metadata=dict(event.extra_data or {}),
            timestamp=event.created_at,
        )


class CommentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    request_id: UUID
    user_id: str
    user_name: Optional[str] = None
    user_email: Optional[str] = None
    body: str
    is_internal: bool
    created_at: datetime


class AuditEntryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    request_id: UUID
    sequence: int
    actor_id: str
    action: str
    details: Dict[str, Any]
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    session_id: Optional[str] = None
    severity: str
    created_at: datetime


class ApprovalRequestRead(BaseModel):
    id: UUID
    subject_type: str
    subject_id: str
    subject_title: str
    subject_version: Optional[str] = None
    status: ApprovalStatus
    created_by: str
    created_at: datetime
    updated_at: datetime
    due_date: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    approvers: List[ApproverRead] = Field(default_factory=list)
    events: List[EventRead] = Field(default_factory=list)
    comments: List[CommentRead] = Field(default_factory=list)

    @classmethod
    def from_model(cls, request, *, with_history: bool = True) -> "ApprovalRequestRead":
        return cls(
            id=request.id,
            subject_type=request.subject_type,
            subject_id=request.subject_id,
            subject_title=request.subject_title,
            subject_version=request.subject_version,
            status=request.status,
            created_by=request.created_by,
            created_at=request.created_at,
            updated_at=request.updated_at,
            due_date=request.due_date,
            completed_at=request.completed_at,
            metadata=dict(request.extra_data or {}),
            approvers=[ApproverRead.from_model(a) for a in request.approvers],
            events=[EventRead.from_model(e) for e in request.events] if with_history else [],
            comments=[CommentRead.model_validate(c) for c in request.comments] if with_history else [],
        )


class ApprovalSummary(BaseModel):
    id: UUID
    subject_type: str
    subject_id: str
    subject_title: str
    status: ApprovalStatus
    created_by: str
    approver_count: int
    approved_count: int
    rejected_count: int
    pending_count: int
    changes_requested_count: int
    created_at: datetime
    due_date: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    is_overdue: bool
    days_since_created: int
    days_until_due: Optional[int] = None


class DashboardSummary(BaseModel):
    total_approvals: int
    pending_approvals: int
    overdue_approvals: int
    completed_this_week: int
    average_approval_time: float  # days


class Dashboard(BaseModel):
    summary: DashboardSummary
    my_approvals: List[ApprovalSummary]
    team_approvals: List[ApprovalSummary]
    recent_activity: List[EventRead]
