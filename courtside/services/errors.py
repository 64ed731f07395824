"""
Typed errors raised by the roster, waitlist, availability and booking services.

Callers map these to their own transport status codes. Only ConflictError
and InternalError are worth retrying; the rest are deterministic for a
given input and store state.
"""


class ServiceError(Exception):
    """Base class for all service errors."""

    code = "service_error"
    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ServiceError, ValueError):
    """Raised for malformed or out-of-range input."""

    code = "validation_error"


class NotFoundError(ServiceError, LookupError):
    """Raised when a game, court, user or participant does not exist."""

    code = "not_found"


class StateError(ServiceError):
    """Raised when an operation is invalid for the current status."""

    code = "invalid_state"


class AuthorizationError(ServiceError):
    """Raised when the actor lacks permission for the operation."""

    code = "forbidden"


class ConflictError(ServiceError):
    """Raised for duplicate membership/bookings and concurrent-write conflicts."""

    code = "conflict"
    retryable = True


class InternalError(ServiceError):
    """Raised on store failures and detected invariant violations."""

    code = "internal_error"
    retryable = True
