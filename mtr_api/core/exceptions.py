"""Service-layer errors for the MTR workflow.

Pure components (workflow engine, interaction checker) return structured
results. Only the service layer raises these; the HTTP layer maps them to
status codes and the error envelope in ``mtr_api.main``.
"""

from typing import Any


class MTRServiceError(Exception):
    """Base exception for MTR service errors."""

    error_type = "ServiceError"
    status_code = 500

    def __init__(self, message: str, details: Any = None):
        self.message = message
        self.details = details
        super().__init__(message)


class NotFoundError(MTRServiceError):
    """Referenced record does not exist or is soft-deleted."""

    error_type = "NotFound"
    status_code = 404

    def __init__(self, resource: str, resource_id: Any = None):
        message = f"{resource} not found"
        super().__init__(message, {"resource": resource, "id": str(resource_id) if resource_id else None})


class MTRValidationError(MTRServiceError):
    """Step, workflow or field validation failed.

    ``errors`` always holds every violated rule, not just the first.
    """

    error_type = "ValidationFailure"
    status_code = 400

    def __init__(self, message: str, errors: list[str] | None = None):
        self.errors = list(errors or [])
        super().__init__(message, {"errors": self.errors})


class BusinessRuleError(MTRServiceError):
    """Business rule violated (duplicate active session, cross-session reference)."""

    error_type = "BusinessRuleViolation"
    status_code = 409


class SessionMismatchError(BusinessRuleError):
    """Sub-entity payload references a different MTR session than the path."""

    status_code = 400


class StateConflictError(MTRServiceError):
    """Concurrent modification of the same MTR session."""

    error_type = "StateConflict"
    status_code = 409

    def __init__(self, expected: int | None = None, actual: int | None = None):
        self.expected = expected
        self.actual = actual
        if expected is not None:
            message = f"Version conflict: expected {expected}, got {actual}"
        else:
            message = "MTR session was modified by another request"
        super().__init__(message, {"expected_version": expected, "actual_version": actual})


class PermissionDeniedError(MTRServiceError):
    """Action not allowed for the current request context."""

    error_type = "Forbidden"
    status_code = 403
