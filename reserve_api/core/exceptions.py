"""Custom exception classes for the personnel platform."""


class PersonnelPlatformError(Exception):
    """Base exception for the personnel platform."""

    kind = "Error"
    status_code = 400

    def __init__(self, message: str = "An error occurred"):
        self.message = message
        super().__init__(self.message)


class AuthenticationError(PersonnelPlatformError):
    """Raised when there is no valid session."""
    kind = "Unauthorized"
    status_code = 401


class AuthorizationError(PersonnelPlatformError):
    """Raised when user lacks permission."""
    kind = "Forbidden"
    status_code = 403


class ResourceNotFoundError(PersonnelPlatformError):
    """Raised when a requested resource is not found."""
    kind = "NotFound"
    status_code = 404


class InvalidStateError(PersonnelPlatformError):
    """Raised when a resource is not in the state a transition requires."""
    kind = "InvalidState"
    status_code = 409


class ResourceConflictError(PersonnelPlatformError):
    """Raised on duplicates and on lost state-transition races."""
    kind = "Conflict"
    status_code = 409


class ValidationError(PersonnelPlatformError):
    """Raised when input validation fails."""
    kind = "ValidationError"
    status_code = 400


def error_body(kind: str, message: str) -> dict:
    return {"success": False, "error": kind, "message": message}
