"""Approval service: the command and query surface of the engine.

Every command follows the same shape:

1. validate input (nothing is read or written on failure)
2. run one store transaction: read the request for update, check
   permissions and state, write, re-run the aggregator, append event and
   audit entries
3. after commit, hand any notifications to the dispatcher

Status is only ever written from the aggregator's output. Transactions that
lose an optimistic-concurrency race, or hit a transient store failure, are
retried a bounded number of times.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Type, TypeVar, Union
from uuid import UUID

import pydantic
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_fixed,
)

from signoff.core.config import Settings, get_settings
from signoff.core.errors import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    SignoffError,
    ValidationError,
)
from signoff.core.permissions import Actor, is_admin
from signoff.core.timeutil import to_naive_utc, utc_now
from signoff.db.models import ApprovalRequest, AuditSeverity
from signoff.services.notifications import (
    LoggingNotificationDispatcher,
    Notification,
    NotificationDispatcher,
    format_due_date,
)
from signoff.store.base import ApprovalStore, StoreTransaction
from .aggregator import aggregate
from .projections import build_dashboard, is_overdue, summarize
from .schemas import (
    ApprovalRequestRead,
    ApprovalSummary,
    ApproverIn,
    AuditEntryRead,
    CommentCommand,
    CommentRead,
    CreateApprovalCommand,
    Dashboard,
    DecisionCommand,
    ESignatureIn,
    EventRead,
    SubjectIn,
)
from .states import (
    ApprovalStatus,
    Decision,
    EventAction,
    NotificationType,
    accepts_decisions,
    event_action_for,
    is_terminal,
    notification_for,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")
M = TypeVar("M", bound=pydantic.BaseModel)


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, SignoffError) and exc.retryable


def _parse(model: Type[M], data: Dict[str, Any], what: str) -> M:
    """Validate command input, translating pydantic errors to ValidationError."""
    try:
        return model.model_validate(data)
    except pydantic.ValidationError as e:
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()})
        raise ValidationError(f"Invalid {what}: {', '.join(fields)}", fields=fields) from e


class ApprovalService:
    """
    High-level service for multi-approver approval requests.

    Handles:
    - Creating requests and their approver panels
    - Recording signed decisions and deriving the aggregate status
    - Comments and due-date changes
    - History, audit trail, listings and dashboard projections
    """

    def __init__(
        self,
        store: ApprovalStore,
        *,
        dispatcher: Optional[NotificationDispatcher] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Initialize the approval service.

        Args:
            store: Transactional approval store
            dispatcher: Receives notifications after commit (logs by default)
            settings: Settings (global settings by default)
            clock: Returns the current naive-UTC time
        """
        self.store = store
        self.dispatcher = dispatcher or LoggingNotificationDispatcher()
        self.settings = settings or get_settings()
        self.clock = clock

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def create_approval_request(
        self,
        subject: Union[SubjectIn, Dict[str, Any]],
        approvers: Sequence[Union[ApproverIn, Dict[str, Any]]],
        *,
        actor: Actor,
        due_date: Optional[datetime] = None,
        metadata: Optional[Dict[str, Any]] = None,
        comment: Optional[str] = None,
    ) -> ApprovalRequestRead:
        """
        Create a new approval request in ``pending``.

        Returns:
            The created request

        Raises:
            ValidationError: Subject incomplete, no approvers, no required
                approver, or the same user listed twice
        """
        command = _parse(CreateApprovalCommand, {
            "subject": subject.model_dump() if isinstance(subject, SubjectIn) else subject,
            "approvers": [a.model_dump() if isinstance(a, ApproverIn) else a for a in approvers],
            "due_date": due_date,
            "metadata": metadata or {},
            "comment": comment,
        }, "approval request")
        self._validate_panel(command.approvers)

        def work(tx: StoreTransaction):
            now = self.clock()
            request = tx.insert_request(ApprovalRequest(
                subject_type=command.subject.type,
                subject_id=command.subject.id,
                subject_title=command.subject.title,
                subject_version=command.subject.version,
                status=ApprovalStatus.PENDING.value,
                created_by=actor.user_id,
                due_date=command.due_date,
                extra_data=command.metadata,
                created_at=now,
                updated_at=now,
            ))
            for approver in command.approvers:
                tx.upsert_approver(
                    request,
                    approver.user_id,
                    user_name=approver.name,
                    user_email=approver.email,
                    role=approver.role,
                    is_required=approver.is_required,
                    signed=False,
                    created_at=now,
                )

            event = tx.append_event(
                request,
                actor_id=actor.user_id,
                actor_name=actor.name,
                actor_email=actor.email,
                action=EventAction.CREATED.value,
                comment=command.comment,
                metadata={"subject_type": command.subject.type, "subject_id": command.subject.id},
                at=now,
            )
            self._audit(tx, request, actor, EventAction.CREATED, now, {
                "subject_type": command.subject.type,
                "subject_id": command.subject.id,
                "subject_version": command.subject.version,
                "approver_count": len(command.approvers),
                "required_approver_count": sum(1 for a in command.approvers if a.is_required),
                "due_date": format_due_date(command.due_date),
            })

            tx.flush()

            context = self._notification_context(request)
            notifications = [
                Notification(
                    request_id=request.id,
                    type=NotificationType.APPROVAL_REQUESTED,
                    recipients=(approver.user_id,),
                    event_sequence=event.sequence,
                    context=context,
                )
                for approver in request.approvers
            ]
            return ApprovalRequestRead.from_model(request), notifications

        result = self._execute(work)
        logger.info(
            "Created approval request %s for %s:%s with %d approvers",
            result.id, result.subject_type, result.subject_id, len(result.approvers),
            extra={"request_id": str(result.id)},
        )
        return result

    def submit_decision(
        self,
        request_id: UUID,
        actor: Actor,
        decision: Union[Decision, str],
        *,
        comment: Optional[str] = None,
        e_signature: Optional[Union[ESignatureIn, Dict[str, Any]]] = None,
    ) -> ApprovalRequestRead:
        """
        Record an approver's signed decision and re-derive the request status.

        When no signature proof is supplied one is captured from the actor's
        request origin: decisions and signatures are always recorded together.

        Returns:
            The updated request

        Raises:
            ValidationError: Unknown decision or an unsigned signature proof
            NotFoundError: Request does not exist
            ConflictError: Request no longer accepts decisions, or this
                approver has already decided
            PermissionDeniedError: Actor is not an approver on the request
        """
        command = _parse(DecisionCommand, {
            "decision": decision,
            "comment": comment,
            "e_signature": e_signature.model_dump() if isinstance(e_signature, ESignatureIn) else e_signature,
        }, "decision")
        signature = command.e_signature or ESignatureIn(
            signed=True, ip_address=actor.ip_address, user_agent=actor.user_agent,
        )
        if not signature.signed:
            raise ValidationError(
                "Decisions must be signed: e_signature.signed is false",
                fields=["e_signature.signed"],
            )

        def work(tx: StoreTransaction):
            request = self._load_for_update(tx, request_id)
            previous = ApprovalStatus(request.status)

            if not accepts_decisions(previous):
                raise ConflictError(
                    f"Approval request {request_id} is {previous.value} and no longer accepts decisions"
                )

            approver = next((a for a in request.approvers if a.user_id == actor.user_id), None)
            if approver is None:
                raise PermissionDeniedError(
                    f"User {actor.user_id} is not an approver on request {request_id}",
                    user_id=actor.user_id,
                )
            if approver.signed:
                raise ConflictError(
                    f"User {actor.user_id} has already decided on request {request_id}"
                )

            now = self.clock()
            tx.upsert_approver(
                request,
                actor.user_id,
                decision=command.decision.value,
                decided_at=now,
                comment=command.comment,
                signed=True,
                signed_at=now,
                signature_ip_address=signature.ip_address or actor.ip_address,
                signature_user_agent=signature.user_agent or actor.user_agent,
            )
            if actor.name and not approver.user_name:
                approver.user_name = actor.name
            if actor.email and not approver.user_email:
                approver.user_email = actor.email

            action = event_action_for(command.decision)
            event = tx.append_event(
                request,
                actor_id=actor.user_id,
                actor_name=actor.name,
                actor_email=actor.email,
                action=action.value,
                comment=command.comment,
                metadata={"decision": command.decision.value, "signed": True},
                at=now,
            )

            status = aggregate(request.approvers)
            notifications: List[Notification] = []
            if status != previous:
                tx.set_status(request, status.value, at=now, completed=is_terminal(status))
                event = tx.append_event(
                    request,
                    actor_id=actor.user_id,
                    actor_name=actor.name,
                    actor_email=actor.email,
                    action=EventAction.STATUS_CHANGED.value,
                    metadata={"from": previous.value, "to": status.value},
                    at=now,
                )
                notification_type = notification_for(status)
                if notification_type is not None:
                    notifications.append(Notification(
                        request_id=request.id,
                        type=notification_type,
                        recipients=self._participants(request),
                        event_sequence=event.sequence,
                        context=self._notification_context(request),
                    ))
            else:
                tx.touch(request, at=now)

            self._audit(tx, request, actor, action, now, {
                "decision": command.decision.value,
                "comment": command.comment,
                "e_signature": {
                    "signed": True,
                    "signed_at": now.isoformat(),
                    "ip_address": approver.signature_ip_address,
                    "user_agent": approver.signature_user_agent,
                },
                "previous_status": previous.value,
                "new_status": status.value,
            }, severity=AuditSeverity.CRITICAL)
            tx.flush()

            return ApprovalRequestRead.from_model(request), notifications

        result = self._execute(work)
        logger.info(
            "Recorded %s decision by %s on request %s (status: %s)",
            command.decision.value, actor.user_id, request_id, result.status.value,
            extra={"request_id": str(request_id)},
        )
        return result

    def add_comment(
        self,
        request_id: UUID,
        actor: Actor,
        text: str,
        *,
        internal: bool = False,
    ) -> CommentRead:
        """
        Attach a comment to a request and mirror it into the event stream.

        Raises:
            ValidationError: Empty comment
            NotFoundError: Request does not exist
        """
        command = _parse(CommentCommand, {"text": text, "internal": internal}, "comment")

        def work(tx: StoreTransaction):
            request = self._load_for_update(tx, request_id)
            now = self.clock()

            comment = tx.add_comment(
                request,
                user_id=actor.user_id,
                user_name=actor.name,
                user_email=actor.email,
                body=command.text,
                is_internal=command.internal,
                at=now,
            )
            tx.append_event(
                request,
                actor_id=actor.user_id,
                actor_name=actor.name,
                actor_email=actor.email,
                action=EventAction.COMMENT_ADDED.value,
                comment=command.text,
                metadata={"is_internal": command.internal},
                at=now,
            )
            tx.touch(request, at=now)
            self._audit(tx, request, actor, EventAction.COMMENT_ADDED, now, {
                "comment": command.text,
                "is_internal": command.internal,
            })
            tx.flush()
            return CommentRead.model_validate(comment), []

        result = self._execute(work)
        logger.info(
            "Comment added to request %s by %s", request_id, actor.user_id,
            extra={"request_id": str(request_id)},
        )
        return result

    def update_due_date(
        self,
        request_id: UUID,
        due_date: Optional[datetime],
        *,
        actor: Actor,
    ) -> None:
        """
        Change or clear a request's due date.

        Raises:
            NotFoundError: Request does not exist
            PermissionDeniedError: Actor is neither the creator nor an admin
        """
        due_date = to_naive_utc(due_date)

        def work(tx: StoreTransaction):
            request = self._load_for_update(tx, request_id)
            if request.created_by != actor.user_id and not is_admin(actor, self.settings.admin_permission):
                raise PermissionDeniedError(
                    f"Only the creator or an administrator may change the due date of request {request_id}",
                    user_id=actor.user_id,
                )

            now = self.clock()
            previous = request.due_date
            tx.set_due_date(request, due_date, at=now)
            tx.append_event(
                request,
                actor_id=actor.user_id,
                actor_name=actor.name,
                actor_email=actor.email,
                action=EventAction.DUE_DATE_UPDATED.value,
                comment=f"Due date set to {due_date.isoformat()}" if due_date else "Due date removed",
                metadata={"previous_due_date": format_due_date(previous), "due_date": format_due_date(due_date)},
                at=now,
            )
            self._audit(tx, request, actor, EventAction.DUE_DATE_UPDATED, now, {
                "previous_due_date": format_due_date(previous),
                "new_due_date": format_due_date(due_date),
            })
            return None, []

        self._execute(work)
        logger.info(
            "Due date of request %s updated by %s", request_id, actor.user_id,
            extra={"request_id": str(request_id)},
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_approval(self, request_id: UUID) -> ApprovalRequestRead:
        """Get a request with approvers, events and comments."""
        def work(tx: StoreTransaction):
            return ApprovalRequestRead.from_model(self._load(tx, request_id))

        return self.store.with_transaction(work)

    def get_history(self, request_id: UUID) -> List[EventRead]:
        """Get a request's events in stream order."""
        def work(tx: StoreTransaction):
            self._load(tx, request_id)
            return [EventRead.from_model(e) for e in tx.list_events(request_id=request_id)]

        return self.store.with_transaction(work)

    def get_audit_trail(self, request_id: UUID) -> List[AuditEntryRead]:
        """Get a request's audit entries, oldest first. Compliance use only."""
        def work(tx: StoreTransaction):
            self._load(tx, request_id)
            return [AuditEntryRead.model_validate(a) for a in tx.list_audit(request_id)]

        return self.store.with_transaction(work)

    def is_overdue(self, request_id: UUID) -> bool:
        request = self.get_approval(request_id)
        return is_overdue(request.status, request.due_date, self.clock())

    def list_approvals(
        self,
        *,
        user_id: Optional[str] = None,
        status: Optional[Union[ApprovalStatus, str]] = None,
        subject_type: Optional[str] = None,
        overdue: Optional[bool] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[ApprovalSummary], int]:
        """
        List request summaries, newest first.

        Args:
            user_id: Only requests this user created or is an approver on
            status: Only requests in this status
            subject_type: Only requests about this kind of subject
            overdue: Only overdue (True) or not overdue (False) requests
            limit: Page size
            offset: Page start

        Returns:
            (page of summaries, total matching count)
        """
        try:
            status_value = ApprovalStatus(status).value if status else None
        except ValueError as e:
            raise ValidationError(f"Unknown status: {status}", fields=["status"]) from e

        def work(tx: StoreTransaction):
            rows = tx.list_requests(
                participant_id=user_id, status=status_value, subject_type=subject_type,
            )
            return [ApprovalRequestRead.from_model(r, with_history=False) for r in rows]

        now = self.clock()
        summaries = [summarize(r, now) for r in self.store.with_transaction(work)]
        if overdue is not None:
            summaries = [s for s in summaries if s.is_overdue == overdue]

        return summaries[offset:offset + limit], len(summaries)

    def get_dashboard(self, user_id: str) -> Dashboard:
        """Build a user's dashboard from scratch."""
        def work(tx: StoreTransaction):
            requests = [
                ApprovalRequestRead.from_model(r, with_history=False)
                for r in tx.list_requests()
            ]
            recent = [
                EventRead.from_model(e)
                for e in tx.list_events(limit=self.settings.recent_activity_limit, newest_first=True)
            ]
            return requests, recent

        requests, recent = self.store.with_transaction(work)
        return build_dashboard(
            user_id,
            requests,
            recent,
            self.clock(),
            completed_window_days=self.settings.completed_window_days,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _execute(self, work: Callable[[StoreTransaction], Tuple[T, List[Notification]]]) -> T:
        """Run a command transaction with bounded retries, then notify."""
        retrying = Retrying(
            stop=stop_after_attempt(self.settings.transaction_max_attempts),
            wait=wait_fixed(self.settings.transaction_retry_wait),
            retry=retry_if_exception(_is_retryable),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        result, notifications = retrying(self.store.with_transaction, work)
        self._dispatch(notifications)
        return result

    def _dispatch(self, notifications: List[Notification]) -> None:
        for notification in notifications:
            try:
                self.dispatcher.dispatch(notification)
            except Exception:
                logger.exception(
                    "Failed to dispatch %s notification for request %s",
                    notification.type.value, notification.request_id,
                    extra={"request_id": str(notification.request_id)},
                )

    @staticmethod
    def _validate_panel(approvers: List[ApproverIn]) -> None:
        if not approvers:
            raise ValidationError("At least one approver is required", fields=["approvers"])
        if not any(a.is_required for a in approvers):
            raise ValidationError(
                "At least one approver must be required; otherwise the request can never be approved",
                fields=["approvers"],
            )
        user_ids = [a.user_id for a in approvers]
        duplicates = sorted({u for u in user_ids if user_ids.count(u) > 1})
        if duplicates:
            raise ValidationError(
                f"Approvers listed more than once: {', '.join(duplicates)}",
                fields=["approvers"],
            )

    @staticmethod
    def _load(tx: StoreTransaction, request_id: UUID) -> ApprovalRequest:
        request = tx.get_request(request_id)
        if request is None:
            raise NotFoundError("Approval request", request_id)
        return request

    @staticmethod
    def _load_for_update(tx: StoreTransaction, request_id: UUID) -> ApprovalRequest:
        request = tx.get_request_for_update(request_id)
        if request is None:
            raise NotFoundError("Approval request", request_id)
        return request

    @staticmethod
    def _audit(
        tx: StoreTransaction,
        request: ApprovalRequest,
        actor: Actor,
        action: EventAction,
        at: datetime,
        details: Dict[str, Any],
        *,
        severity: AuditSeverity = AuditSeverity.INFO,
    ) -> None:
        tx.append_audit(
            request,
            actor_id=actor.user_id,
            action=action.value,
            details=details,
            ip_address=actor.ip_address,
            user_agent=actor.user_agent,
            session_id=actor.session_id,
            severity=severity,
            at=at,
        )

    @staticmethod
    def _participants(request: ApprovalRequest) -> Tuple[str, ...]:
        recipients = [request.created_by]
        recipients.extend(a.user_id for a in request.approvers if a.user_id != request.created_by)
        return tuple(recipients)

    def _notification_context(self, request: ApprovalRequest) -> Dict[str, Any]:
        return {
            "subject_title": request.subject_title,
            "subject_type": request.subject_type,
            "subject_id": request.subject_id,
            "created_by": request.created_by,
            "due_date": format_due_date(request.due_date),
            "status": request.status,
            "review_url": f"{self.settings.review_base_url}/{request.id}",
        }
