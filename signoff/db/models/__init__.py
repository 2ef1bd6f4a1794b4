"""Database models for Signoff."""

from signoff.db.models.approval import (
    ApprovalRequest,
    Approver,
    ApprovalEvent,
    ApprovalComment,
    ImmutableRecordError,
)
from signoff.db.models.audit import AuditLog, AuditSeverity

__all__ = [
    "ApprovalRequest",
    "Approver",
    "ApprovalEvent",
    "ApprovalComment",
    "ImmutableRecordError",
    "AuditLog",
    "AuditSeverity",
]
