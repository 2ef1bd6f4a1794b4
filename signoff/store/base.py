"""Store contract for approval requests.

Defines the interface the approval service needs from a transactional
store. A store runs a unit of work against one transaction: everything done
through the ``StoreTransaction`` handed to the callback commits together or
not at all.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, TypeVar
from uuid import UUID

from signoff.db.models import (
    ApprovalComment,
    ApprovalEvent,
    ApprovalRequest,
    Approver,
    AuditLog,
    AuditSeverity,
)

T = TypeVar("T")


class StoreTransaction(ABC):
    """Operations available inside one store transaction."""

    @abstractmethod
    def get_request(self, request_id: UUID) -> Optional[ApprovalRequest]:
        """Plain read of a request (for projections)."""

    @abstractmethod
    def get_request_for_update(self, request_id: UUID) -> Optional[ApprovalRequest]:
        """Read a request with its approvers for a read-modify-write.

        The returned row is version-checked at commit: if another
        transaction committed a change to it in the meantime, the commit
        fails with a retryable ConflictError.
        """

    @abstractmethod
    def insert_request(self, request: ApprovalRequest) -> ApprovalRequest:
        """Persist a brand new request (with any approvers already attached)."""

    @abstractmethod
    def upsert_approver(self, request: ApprovalRequest, user_id: str, **fields: Any) -> Approver:
        """Create the approver row for ``user_id`` or update its fields."""

    @abstractmethod
    def append_event(
        self,
        request: ApprovalRequest,
        *,
        actor_id: str,
        action: str,
        at: datetime,
        actor_name: Optional[str] = None,
        actor_email: Optional[str] = None,
        comment: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ApprovalEvent:
        """Append the next event to the request's stream."""

    @abstractmethod
    def append_audit(
        self,
        request: ApprovalRequest,
        *,
        actor_id: str,
        action: str,
        at: datetime,
        details: Optional[Dict[str, Any]] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        session_id: Optional[str] = None,
        severity: AuditSeverity = AuditSeverity.INFO,
    ) -> AuditLog:
        """Append an audit entry for the request."""

    @abstractmethod
    def add_comment(
        self,
        request: ApprovalRequest,
        *,
        user_id: str,
        body: str,
        is_internal: bool,
        at: datetime,
        user_name: Optional[str] = None,
        user_email: Optional[str] = None,
    ) -> ApprovalComment:
        """Attach a comment to the request."""

    @abstractmethod
    def set_status(self, request: ApprovalRequest, status: str, *, at: datetime, completed: bool) -> None:
        """Persist a new aggregate status (and completion time when terminal)."""

    @abstractmethod
    def set_due_date(self, request: ApprovalRequest, due_date: Optional[datetime], *, at: datetime) -> None:
        """Change or clear the request's due date."""

    @abstractmethod
    def touch(self, request: ApprovalRequest, *, at: datetime) -> None:
        """Mark the request modified, bumping its version."""

    @abstractmethod
    def flush(self) -> None:
        """Write pending changes without committing, assigning generated keys."""

    @abstractmethod
    def list_requests(
        self,
        *,
        participant_id: Optional[str] = None,
        status: Optional[str] = None,
        subject_type: Optional[str] = None,
    ) -> List[ApprovalRequest]:
        """Requests matching the filters, newest first, approvers loaded."""

    @abstractmethod
    def list_events(
        self,
        *,
        request_id: Optional[UUID] = None,
        limit: Optional[int] = None,
        newest_first: bool = False,
    ) -> List[ApprovalEvent]:
        """Events for one request (or all requests), in stream order."""

    @abstractmethod
    def list_audit(self, request_id: UUID) -> List[AuditLog]:
        """Audit entries for one request, oldest first."""


class ApprovalStore(ABC):
    """A transactional store of approval requests."""

    @abstractmethod
    def with_transaction(self, fn: Callable[[StoreTransaction], T]) -> T:
        """
        Run ``fn`` inside one transaction and commit its writes atomically.

        Raises:
            ConflictError: The optimistic version check failed (retryable)
            PersistenceError: The store failed (retryable); nothing committed
        """
