"""Approval workflow database models.

Stores approval requests, their approver registry, the append-only event
stream and discussion comments.
"""

import uuid
from sqlalchemy import (
    Boolean, Column, DateTime, ForeignKey, Integer, JSON, String, Text,
    UniqueConstraint, Uuid, event,
)
from sqlalchemy.orm import relationship

from signoff.core.timeutil import utc_now
from signoff.db.base import Base


class ImmutableRecordError(Exception):
    """Raised when code attempts to modify or delete an append-only row."""


class ApprovalRequest(Base):
    """
    A subject routed through a panel of approvers.

    ``version`` is the optimistic-concurrency counter. The store bumps it on
    every command and the UPDATE is conditioned on the version that was
    read, so two transactions that read the same version cannot both commit.
    """
    __tablename__ = "approval_requests"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)

    # Subject identification
    subject_type = Column(String(50), nullable=False, index=True)
    subject_id = Column(String(255), nullable=False, index=True)
    subject_title = Column(String(500), nullable=False)
    subject_version = Column(String(100), nullable=True)

    # Workflow state (derived by the aggregator, never set by callers)
    status = Column(String(50), nullable=False, default="pending", index=True)

    # Request tracking
    created_by = Column(String(255), nullable=False, index=True)
    due_date = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    # Additional data
    extra_data = Column(JSON, nullable=False, default=dict)

    # Timestamps
    created_at = Column(DateTime, default=utc_now, nullable=False, index=True)
    updated_at = Column(DateTime, default=utc_now, nullable=False)

    version = Column(Integer, nullable=False)

    # Relationships
    approvers = relationship(
        "Approver", back_populates="request", order_by="Approver.position",
        cascade="all, delete-orphan",
    )
    events = relationship(
        "ApprovalEvent", back_populates="request", order_by="ApprovalEvent.sequence",
    )
    comments = relationship(
        "ApprovalComment", back_populates="request", order_by="ApprovalComment.created_at",
    )
    audit_entries = relationship(
        "AuditLog", back_populates="request", order_by="AuditLog.sequence",
    )

    __mapper_args__ = {"version_id_col": version, "version_id_generator": False}

    def __repr__(self) -> str:
        return f"<ApprovalRequest {self.subject_type}:{self.subject_id} [{self.status}]>"


class Approver(Base):
    """
    One person on a request's panel.

    Holds at most one decision. Once ``signed`` is true the decision and
    signature fields never change again.
    """
    __tablename__ = "approvers"
    __table_args__ = (
        UniqueConstraint("request_id", "user_id", name="uq_approvers_request_user"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    request_id = Column(Uuid(as_uuid=True), ForeignKey("approval_requests.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)

    # Identity
    user_id = Column(String(255), nullable=False, index=True)
    user_name = Column(String(255), nullable=True)
    user_email = Column(String(255), nullable=True)
    role = Column(String(100), nullable=False)
    is_required = Column(Boolean, nullable=False, default=True)

    # Decision
    decision = Column(String(50), nullable=True)
    decided_at = Column(DateTime, nullable=True)
    comment = Column(Text, nullable=True)

    # E-signature
    signed = Column(Boolean, nullable=False, default=False)
    signed_at = Column(DateTime, nullable=True)
    signature_ip_address = Column(String(45), nullable=True)
    signature_user_agent = Column(Text, nullable=True)

    created_at = Column(DateTime, default=utc_now, nullable=False)

    request = relationship("ApprovalRequest", back_populates="approvers")

    def __repr__(self) -> str:
        return f"<Approver {self.user_id} [{self.decision or 'undecided'}]>"


class ApprovalEvent(Base):
    """
    One thing that happened to a request.

    Append-only. Ordered by ``sequence``, which is dense and monotonic per
    request; ``created_at`` is informational.
    """
    __tablename__ = "events"
    __table_args__ = (
        UniqueConstraint("request_id", "sequence", name="uq_events_request_sequence"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    request_id = Column(Uuid(as_uuid=True), ForeignKey("approval_requests.id", ondelete="CASCADE"), nullable=False, index=True)
    sequence = Column(Integer, nullable=False)

    # Actor
    actor_id = Column(String(255), nullable=False)
    actor_name = Column(String(255), nullable=True)
    actor_email = Column(String(255), nullable=True)

    action = Column(String(50), nullable=False, index=True)
    comment = Column(Text, nullable=True)
    extra_data = Column(JSON, nullable=False, default=dict)

    created_at = Column(DateTime, default=utc_now, nullable=False, index=True)

    request = relationship("ApprovalRequest", back_populates="events")

    def __repr__(self) -> str:
        return f"<ApprovalEvent #{self.sequence} {self.action} by {self.actor_id}>"


class ApprovalComment(Base):
    """Discussion attached to a request. Mirrored into the event stream."""
    __tablename__ = "approval_comments"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    request_id = Column(Uuid(as_uuid=True), ForeignKey("approval_requests.id", ondelete="CASCADE"), nullable=False, index=True)

    user_id = Column(String(255), nullable=False)
    user_name = Column(String(255), nullable=True)
    user_email = Column(String(255), nullable=True)

    body = Column(Text, nullable=False)
    is_internal = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, default=utc_now, nullable=False)

    request = relationship("ApprovalRequest", back_populates="comments")


@event.listens_for(ApprovalEvent, "before_update")
def _prevent_event_update(mapper, connection, target):
    raise ImmutableRecordError(f"Event {target.id} is append-only and cannot be modified")


@event.listens_for(ApprovalEvent, "before_delete")
def _prevent_event_delete(mapper, connection, target):
    raise ImmutableRecordError(f"Event {target.id} is append-only and cannot be deleted")
