"""Typed failures raised by the service layer.

Every expected failure of a service call is one of these classes. Outer
surfaces map them by ``status_code``/``code``; anything else is unexpected
and propagates unchanged.
"""


class AppError(Exception):
    """Base class for expected service-layer failures."""

    status_code = 500
    code = "INTERNAL_ERROR"
    default_message = "Internal error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class UnauthorizedError(AppError):
    """Caller is not authenticated, or a credential did not match."""

    status_code = 401
    code = "UNAUTHORIZED"
    default_message = "Authentication required"


class ForbiddenError(AppError):
    """Caller is authenticated but not permitted."""

    status_code = 403
    code = "FORBIDDEN"
    default_message = "Permission denied"


class NotFoundError(AppError):
    """Entity does not exist or is outside the caller's scope."""

    status_code = 404
    code = "NOT_FOUND"
    default_message = "Resource not found"


class ConflictError(AppError):
    """Operation would break a uniqueness or state rule."""

    status_code = 409
    code = "CONFLICT"
    default_message = "Conflicting data"


class ValidationError(AppError):
    """Input is malformed or semantically invalid."""

    status_code = 400
    code = "VALIDATION_ERROR"
    default_message = "Invalid input"


class InvalidHierarchyError(AppError):
    """Task tree structure would be violated."""

    status_code = 422
    code = "INVALID_HIERARCHY"
    default_message = "Task hierarchy limit exceeded"
