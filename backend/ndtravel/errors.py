"""Domain errors for the permission subsystem.

HTTP-facing errors subclass the matching Werkzeug exception so the Flask
error handlers render them with the right status. ``PersistenceError`` never
leaves a bulk update: the reconciliation engine records it against the role
that failed and moves on.
"""
from werkzeug.exceptions import BadRequest, Forbidden, NotFound


class UnauthorizedError(Forbidden):
    """Caller's role may not manage permissions."""
    description = 'You are not allowed to perform this action'


class ProtectedEntityError(Forbidden):
    """Attempt to mutate, copy to or copy from the protected top role."""
    description = 'The Super Admin role cannot be modified'


class NotFoundError(NotFound):
    description = 'Resource not found'


class ValidationError(BadRequest):
    description = 'Invalid request'


class PersistenceError(Exception):
    """A write for a single role failed; the role's unit of work was rolled back."""

    def __init__(self, message: str, role_id=None):
        self.message = message
        self.role_id = role_id
        super().__init__(message)
