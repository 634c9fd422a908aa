"""
Custom Exceptions.

Application-specific exception classes for consistent error handling.
Storage backends, the token service and the password hasher raise these;
the account service passes them through, annotated with the failing
operation, to whatever boundary translates them for users.
"""


class ApplicationError(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, code: str = "SYS_INTERNAL_ERROR") -> None:
        self.message = message
        self.code = code
        self.operation: str | None = None
        super().__init__(self.message)


class NotFoundError(ApplicationError):
    """Raised when a user, note, username or phone number cannot be found."""

    def __init__(self, message: str = "Resource not found") -> None:
        super().__init__(message, code="RES_NOT_FOUND")


class ValidationError(ApplicationError):
    """Raised when caller input is rejected (empty or mismatched passwords, bad page)."""

    def __init__(self, message: str = "Validation failed", details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message, code="VAL_VALIDATION_ERROR")


class AuthenticationError(ApplicationError):
    """Raised on a bad password, a bad migration key or a rejected token."""

    def __init__(self, message: str = "Authentication required", code: str = "AUTH_UNAUTHORIZED") -> None:
        super().__init__(message, code=code)


class InvalidTokenError(AuthenticationError):
    """Raised when a claim token fails signature, structure or claim checks."""

    def __init__(self, message: str = "Invalid token") -> None:
        super().__init__(message, code="AUTH_INVALID_TOKEN")


class ConflictError(ApplicationError):
    """Raised when a username or phone number is already taken."""

    def __init__(self, message: str = "Resource conflict") -> None:
        super().__init__(message, code="RES_CONFLICT")


class UpstreamError(ApplicationError):
    """Raised when a hashing or signing primitive, or a collaborator, fails."""

    def __init__(self, message: str = "Upstream failure") -> None:
        super().__init__(message, code="SYS_UPSTREAM_ERROR")


class DatabaseError(ApplicationError):
    """Raised when a database operation fails."""

    def __init__(self, message: str = "Database error", code: str = "SYS_DATABASE_ERROR") -> None:
        super().__init__(message, code=code)


class PartialDeletionError(DatabaseError):
    """
    Raised when account deletion removed the notes but not the user row.

    The two deletion phases are not atomic. Operators should treat this
    as orphaned state: the user still exists with no notes.
    """

    def __init__(self, message: str, user_id: int, notes_deleted: int) -> None:
        self.user_id = user_id
        self.notes_deleted = notes_deleted
        super().__init__(message, code="SYS_PARTIAL_DELETION")
