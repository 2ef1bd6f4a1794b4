"""SQLAlchemy implementation of the approval store."""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, TypeVar
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from signoff.core.errors import ConflictError, PersistenceError
from signoff.db.base import Base
from signoff.db.models import (
    ApprovalComment,
    ApprovalEvent,
    ApprovalRequest,
    Approver,
    AuditLog,
    AuditSeverity,
)
from signoff.db.session import build_engine, build_session_factory
from .base import ApprovalStore, StoreTransaction

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SqlAlchemyTransaction(StoreTransaction):
    """Store operations bound to one SQLAlchemy session."""

    def __init__(self, session: Session):
        self.session = session

    def get_request(self, request_id: UUID) -> Optional[ApprovalRequest]:
        return self.session.get(ApprovalRequest, request_id)

    def get_request_for_update(self, request_id: UUID) -> Optional[ApprovalRequest]:
        stmt = (
            select(ApprovalRequest)
            .where(ApprovalRequest.id == request_id)
            .options(selectinload(ApprovalRequest.approvers))
            .with_for_update()
        )
        return self.session.execute(stmt).scalars().first()

    def insert_request(self, request: ApprovalRequest) -> ApprovalRequest:
        request.version = 1
        self.session.add(request)
        self.session.flush()
        return request

    def upsert_approver(self, request: ApprovalRequest, user_id: str, **fields: Any) -> Approver:
        for approver in request.approvers:
            if approver.user_id == user_id:
                for name, value in fields.items():
                    setattr(approver, name, value)
                return approver

        approver = Approver(user_id=user_id, position=len(request.approvers), **fields)
        request.approvers.append(approver)
        return approver

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
        # The version check on the request serializes writers, so the
        # loaded stream is the whole stream.
        events = request.events
        sequence = events[-1].sequence + 1 if events else 1

        evt = ApprovalEvent(
            sequence=sequence,
            actor_id=actor_id,
            actor_name=actor_name,
            actor_email=actor_email,
            action=action,
            comment=comment,
            extra_data=metadata or {},
            created_at=at,
        )
        events.append(evt)
        return evt

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
        entries = request.audit_entries
        entry = AuditLog.create_entry(
            request.id,
            action,
            actor_id,
            sequence=entries[-1].sequence + 1 if entries else 1,
            details=details,
            ip_address=ip_address,
            user_agent=user_agent,
            session_id=session_id,
            severity=severity,
            created_at=at,
        )
        entries.append(entry)
        return entry

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
        comment = ApprovalComment(
            user_id=user_id,
            user_name=user_name,
            user_email=user_email,
            body=body,
            is_internal=is_internal,
            created_at=at,
        )
        request.comments.append(comment)
        return comment

    def set_status(self, request: ApprovalRequest, status: str, *, at: datetime, completed: bool) -> None:
        request.status = status
        request.completed_at = at if completed else None
        self.touch(request, at=at)

    def set_due_date(self, request: ApprovalRequest, due_date: Optional[datetime], *, at: datetime) -> None:
        request.due_date = due_date
        self.touch(request, at=at)

    def touch(self, request: ApprovalRequest, *, at: datetime) -> None:
        request.updated_at = at
        # Counter is application-managed: bump once per transaction.
        if not self.session.info.get(("touched", request.id)):
            request.version = request.version + 1
            self.session.info[("touched", request.id)] = True

    def flush(self) -> None:
        self.session.flush()

    def list_requests(
        self,
        *,
        participant_id: Optional[str] = None,
        status: Optional[str] = None,
        subject_type: Optional[str] = None,
    ) -> List[ApprovalRequest]:
        stmt = select(ApprovalRequest).options(selectinload(ApprovalRequest.approvers))

        if participant_id:
            approver_of = select(Approver.request_id).where(Approver.user_id == participant_id)
            stmt = stmt.where(or_(
                ApprovalRequest.created_by == participant_id,
                ApprovalRequest.id.in_(approver_of),
            ))
        if status:
            stmt = stmt.where(ApprovalRequest.status == status)
        if subject_type:
            stmt = stmt.where(ApprovalRequest.subject_type == subject_type)

        stmt = stmt.order_by(ApprovalRequest.created_at.desc())
        return list(self.session.execute(stmt).scalars().all())

    def list_events(
        self,
        *,
        request_id: Optional[UUID] = None,
        limit: Optional[int] = None,
        newest_first: bool = False,
    ) -> List[ApprovalEvent]:
        stmt = select(ApprovalEvent)
        if request_id is not None:
            stmt = stmt.where(ApprovalEvent.request_id == request_id)

        # Within one request the sequence is authoritative; across requests
        # only timestamps are comparable.
        if request_id is not None:
            keys = (ApprovalEvent.sequence,)
        else:
            keys = (ApprovalEvent.created_at, ApprovalEvent.sequence)
        stmt = stmt.order_by(*(k.desc() if newest_first else k.asc() for k in keys))

        if limit:
            stmt = stmt.limit(limit)
        return list(self.session.execute(stmt).scalars().all())

    def list_audit(self, request_id: UUID) -> List[AuditLog]:
        stmt = (
            select(AuditLog)
            .where(AuditLog.request_id == request_id)
            .order_by(AuditLog.sequence.asc())
        )
        return list(self.session.execute(stmt).scalars().all())


class SqlAlchemyApprovalStore(ApprovalStore):
    """
    Approval store backed by a relational database through SQLAlchemy.

    Each ``with_transaction`` call gets its own session. Commit failures
    roll the whole unit of work back.
    """

    def __init__(self, session_factory: sessionmaker, engine: Optional[Engine] = None):
        self.session_factory = session_factory
        self.engine = engine

    @classmethod
    def from_url(cls, database_url: Optional[str] = None, **engine_kwargs) -> "SqlAlchemyApprovalStore":
        engine = build_engine(database_url, **engine_kwargs)
        return cls(build_session_factory(engine), engine=engine)

    def create_schema(self) -> None:
        """Create all tables (tests and local development; use Alembic otherwise)."""
        if self.engine is None:
            raise RuntimeError("create_schema requires a store built with an engine")
        Base.metadata.create_all(self.engine)

    def with_transaction(self, fn: Callable[[StoreTransaction], T]) -> T:
        session = self.session_factory()
        try:
            result = fn(SqlAlchemyTransaction(session))
            session.commit()
            return result
        except StaleDataError as e:
            session.rollback()
            logger.info("Optimistic version check failed: %s", e)
            raise ConflictError(
                "Approval request was modified concurrently; retry the command",
                retryable=True,
            ) from e
        except SQLAlchemyError as e:
            session.rollback()
            logger.exception("Store transaction failed")
            raise PersistenceError(f"Store transaction failed: {e}") from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()
