"""Error taxonomy for the approval workflow engine.

All errors except PersistenceError are deterministic and safe to show to the
end user. Errors flagged ``retryable`` may be retried automatically a bounded
number of times before they are surfaced.
"""

from typing import Iterable, Optional


class SignoffError(Exception):
    """Base class for all engine errors."""

    retryable: bool = False

    def __init__(self, message: str, *, retryable: Optional[bool] = None):
        super().__init__(message)
        self.message = message
        if retryable is not None:
            self.retryable = retryable


class ValidationError(SignoffError):
    """Raised when command input is malformed or incomplete.

    Always raised before any write.
    """

    def __init__(self, message: str, fields: Optional[Iterable[str]] = None):
        super().__init__(message)
        self.fields = list(fields or [])


class PermissionDeniedError(SignoffError):
    """Raised when the actor lacks standing to perform a command."""

    def __init__(self, message: str, *, user_id: Optional[str] = None):
        super().__init__(message)
        self.user_id = user_id


class ConflictError(SignoffError):
    """Raised when a command is inconsistent with the current state.

    Covers late decisions on a closed request, re-deciding after a signed
    decision, and losing an optimistic-concurrency race. Only the last case
    is retryable.
    """


class NotFoundError(SignoffError):
    """Raised when a referenced request or approver does not exist."""

    def __init__(self, resource: str, identifier: object):
        super().__init__(f"{resource} {identifier} not found")
        self.resource = resource
        self.identifier = identifier


class PersistenceError(SignoffError):
    """Raised when the underlying store fails. Nothing is partially committed."""

    retryable = True


class NotificationError(SignoffError):
    """Raised by notification dispatchers. Logged only, never propagated."""
