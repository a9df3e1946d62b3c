"""Domain error taxonomy.

Services raise these; the global error handler maps them to JSON responses.
``no_op`` errors (already claimed, already completed) are informative
outcomes rather than failures, and clients branch on them.
"""

from __future__ import annotations


class ColinkError(Exception):
    """Base class for domain errors."""

    code = "error"
    status_code = 400
    no_op = False

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(ColinkError):
    """A referenced user, quest, badge or message does not exist."""

    code = "not_found"
    status_code = 404


class InvalidArgumentError(ColinkError):
    """Caller supplied a value the operation cannot accept."""

    code = "invalid_argument"
    status_code = 422


class PermissionDeniedError(ColinkError):
    """Caller is authenticated but not allowed to act on the resource."""

    code = "permission_denied"
    status_code = 403


class ConflictError(ColinkError):
    """The write collides with existing state."""

    code = "conflict"
    status_code = 409


class AlreadyClaimedError(ConflictError):
    """Daily reward was already claimed for this calendar day."""

    code = "already_claimed"
    no_op = True


class AlreadyCompletedError(ConflictError):
    """Quest progress is already in its terminal completed state."""

    code = "already_completed"
    no_op = True
