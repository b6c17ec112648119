"""Domain errors shared by the group, membership and media services.

Every failure an operation can report is one of these types. Routes never
translate them by hand: ``loop.main`` registers a single handler that turns
a ``LoopError`` into a JSON response using ``status_code``, ``reason`` and
the user-facing ``message``.
"""

import uuid
from typing import List, Optional

GENERIC_RETRY_MESSAGE = "Something went wrong, please try again."


def new_diagnostic_code() -> str:
    return f"LOOP-{uuid.uuid4().hex[:8].upper()}"


class LoopError(Exception):
    """Base class for all domain errors."""

    reason: str = "error"
    message: str = GENERIC_RETRY_MESSAGE
    status_code: int = 500

    def __init__(self, message: Optional[str] = None, reason: Optional[str] = None) -> None:
        super().__init__(message or self.message)
        if message:
            self.message = message
        if reason:
            self.reason = reason

    def to_dict(self) -> dict:
        return {"detail": self.message, "reason": self.reason}


# Expected, recoverable-by-caller outcomes


class NotFound(LoopError):
    reason = "not_found"
    message = "Not found"
    status_code = 404


class GroupNotFound(NotFound):
    reason = "group_not_found"
    message = "Group not found"


class MediaNotFound(NotFound):
    reason = "media_not_found"
    message = "Media not found"


class NotMember(NotFound):
    reason = "not_member"
    message = "You're not a member of this group"


class AlreadyExists(LoopError):
    reason = "already_exists"
    message = "Already exists"
    status_code = 409


class AlreadyMember(AlreadyExists):
    reason = "already_member"
    message = "You're already a member of this group"


class CapacityExceeded(LoopError):
    reason = "capacity_exceeded"
    message = "Capacity exceeded"
    status_code = 409


class GroupFull(CapacityExceeded):
    reason = "group_full"
    message = "This group is full"


class Unauthorized(LoopError):
    reason = "unauthorized"
    message = "Not authorized to perform this action"
    status_code = 403


class LastAdmin(LoopError):
    reason = "last_admin"
    message = "A group needs at least one admin"
    status_code = 409


class InvalidInput(LoopError):
    reason = "invalid_input"
    message = "Invalid input"
    status_code = 422


# Failures that surface as "try again" with a diagnostic code


class OperationalError(LoopError):
    """Failure the caller cannot fix by changing its request."""

    def __init__(self, message: Optional[str] = None, reason: Optional[str] = None) -> None:
        super().__init__(message, reason)
        self.diagnostic_code = new_diagnostic_code()

    def to_dict(self) -> dict:
        return {
            "detail": GENERIC_RETRY_MESSAGE,
            "reason": self.reason,
            "diagnostic_code": self.diagnostic_code,
        }


class CodeSpaceExhausted(OperationalError):
    reason = "code_space_exhausted"
    message = "Unable to generate unique group code"
    status_code = 503

    def __init__(self, attempts: int, message: Optional[str] = None) -> None:
        super().__init__(message or f"Unable to generate unique group code after {attempts} attempts")
        self.attempts = attempts


class PartialFailure(OperationalError):
    """A multi-step operation committed its first step but failed a later one.

    ``group_id`` is set when a group row was created without its admin
    membership; ``orphaned_paths`` lists storage objects written without a
    catalog row pointing at them.
    """

    reason = "partial_failure"
    message = "Operation partially completed"
    status_code = 500

    def __init__(
        self,
        message: Optional[str] = None,
        group_id: Optional[int] = None,
        orphaned_paths: Optional[List[str]] = None,
    ) -> None:
        super().__init__(message)
        self.group_id = group_id
        self.orphaned_paths = list(orphaned_paths or [])


class UpstreamUnavailable(OperationalError):
    reason = "upstream_unavailable"
    message = "Upstream service unavailable"
    status_code = 503
