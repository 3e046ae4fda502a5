"""
Domain exceptions for scheduling operations.

Every error carries a message, a details dict for field-level context and an
HTTP status hint used by the API layer.
"""

from typing import Any, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from club_scheduler.services.conflicts import ConflictEntry


class SchedulingError(Exception):
    """Base exception for scheduling operations."""

    status_code: int = 400
    error_type: str = "scheduling_error"

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(SchedulingError):
    """
    Malformed request.

    Causes:
    - Window with end not after start
    - Unknown enum value
    - Edit targeting a date that is not an occurrence of the series
    """

    status_code = 422
    error_type = "validation_error"


class InvalidRuleError(ValidationError):
    """Recurrence rule with an unknown frequency or out-of-domain filters."""

    error_type = "invalid_rule"


class NotFoundError(SchedulingError):
    """Referenced event, resource, location or team does not exist."""

    status_code = 404
    error_type = "not_found"


class ConflictError(SchedulingError):
    """
    Candidate window overlaps existing commitments.

    Carries the full ordered conflict list so the caller can pick another
    window or resource.
    """

    status_code = 409
    error_type = "conflict"

    def __init__(self, message: str, conflicts: list["ConflictEntry"]):
        super().__init__(
            message,
            details={"conflicts": [c.to_dict() for c in conflicts]},
        )
        self.conflicts = conflicts


class NotRecurringError(SchedulingError):
    """Series operation on an event without a recurrence rule."""

    error_type = "not_recurring"


class InvalidEditTypeError(SchedulingError):
    """Series edit/delete mode other than single, future or all."""

    error_type = "invalid_edit_type"


class LockTimeoutError(SchedulingError):
    """
    Another booking held a resource/team/location lock for too long.

    Retryable: the competing booking either commits or rolls back.
    """

    status_code = 503
    error_type = "lock_timeout"
    retryable = True
