"""Custom exception hierarchy.

Every failure raised by the lifecycle core is one of these types so that the
HTTP layer can translate it without re-implementing any policy.
"""

from typing import Any, Dict, Optional


class AppError(Exception):
    """Base exception for application errors."""

    def __init__(
        self,
        message: str,
        original_error: Optional[Exception] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.original_error = original_error
        self.details = details or {}


class ValidationError(AppError):
    """Raised when input is malformed or missing. Not retried."""
    pass


class AuthenticationError(AppError):
    """Raised when the caller has no valid session."""
    pass


class ForbiddenError(AppError):
    """Raised when the actor may not perform the operation.

    The message is always generic; the reason is only logged.
    """

    def __init__(self, message: str = "Access denied", original_error: Optional[Exception] = None):
        super().__init__(message, original_error=original_error)


class NotFoundError(AppError):
    """Raised when an entity id is unknown."""
    pass


class InvalidTransitionError(AppError):
    """Raised when a status change is not an edge of the state machine."""
    pass


class InvalidStateError(AppError):
    """Raised when an operation is not allowed in the request's current status."""
    pass


class ConflictError(AppError):
    """Raised on tracking-number collisions or occupied unique slots."""
    pass


class StorageError(AppError):
    """Raised when the object store rejects a request permanently."""
    pass


class StorageUnavailableError(StorageError):
    """Raised on transient object store failures. Safe to retry with backoff."""
    pass


class DatabaseError(AppError):
    """Raised when a database operation fails."""
    pass


class ConfigurationError(AppError):
    """Raised when configuration is invalid or missing."""
    pass
