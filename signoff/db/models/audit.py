"""Audit log model for approval requests.

This table is IMMUTABLE - ORM listeners (and, on PostgreSQL, database
triggers) prevent UPDATE and DELETE operations. Entries are never surfaced
in normal UI flows; they exist for compliance and forensic purposes.
"""

import uuid
from enum import Enum
from typing import Optional, Dict, Any
from sqlalchemy import Column, String, DateTime, Integer, JSON, ForeignKey, Text, UniqueConstraint, Uuid, event
from sqlalchemy.orm import relationship

from signoff.core.timeutil import utc_now
from signoff.db.base import Base
from signoff.db.models.approval import ImmutableRecordError


class AuditSeverity(str, Enum):
    """Severity levels for audit log entries."""
    INFO = "info"         # Standard operations
    CRITICAL = "critical" # Evidentiary actions (signed decisions)


class AuditLog(Base):
    """
    Immutable audit log entry: who did what, when, and from where.
    """
    __tablename__ = "audit_log"
    __table_args__ = (
        UniqueConstraint("request_id", "sequence", name="uq_audit_log_request_sequence"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    request_id = Column(Uuid(as_uuid=True), ForeignKey("approval_requests.id"), nullable=False, index=True)
    # Dense per-request position; created_at is informational
    sequence = Column(Integer, nullable=False)

    # Actor information
    actor_id = Column(String(255), nullable=False, index=True)
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(Text, nullable=True)
    session_id = Column(String(64), nullable=True)

    # Action details
    action = Column(String(100), nullable=False, index=True)
    details = Column(JSON, nullable=False, default=dict)

    severity = Column(String(20), nullable=False, default="info")
    created_at = Column(DateTime, default=utc_now, nullable=False, index=True)

    request = relationship("ApprovalRequest", back_populates="audit_entries")

    def __repr__(self) -> str:
        return f"<AuditLog {self.action} on {self.request_id} by {self.actor_id}>"

    @classmethod
    def create_entry(
        cls,
        request_id: uuid.UUID,
        action: str,
        actor_id: str,
        *,
        sequence: int,
        details: Optional[Dict[str, Any]] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        session_id: Optional[str] = None,
        severity: AuditSeverity = AuditSeverity.INFO,
        created_at=None,
    ) -> "AuditLog":
        """
        Factory method to create a new audit log entry.

        Args:
            request_id: Approval request the entry belongs to
            action: Action performed (an EventAction value)
            actor_id: User performing the action
            sequence: Position in the request's audit trail
            details: Structured context
            ip_address: Client IP address
            user_agent: Client user agent string
            session_id: Session ID for tracking
            severity: Log severity level
            created_at: Timestamp (defaults to now)
        """
        return cls(
            request_id=request_id,
            action=action,
            sequence=sequence,
            actor_id=actor_id,
            details=details or {},
            ip_address=ip_address,
            user_agent=user_agent,
            session_id=session_id,
            severity=severity.value if isinstance(severity, AuditSeverity) else severity,
            created_at=created_at or utc_now(),
        )


@event.listens_for(AuditLog, "before_update")
def _prevent_audit_update(mapper, connection, target):
    raise ImmutableRecordError("Audit log entries cannot be modified")


@event.listens_for(AuditLog, "before_delete")
def _prevent_audit_delete(mapper, connection, target):
    raise ImmutableRecordError("Audit log entries cannot be deleted")
