"""
Typed failures raised by the order lifecycle service.

Each error knows the HTTP status it maps to, so the API layer can render
any of them with a single exception handler.
"""
from typing import List, Optional

from fastapi import status


class OrderError(Exception):
    """Base class for every business-rule failure of the order service."""

    kind = "Internal"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.message = message
        self.errors = errors or []

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.message!r}>"


class NotFoundError(OrderError):
    kind = "NotFound"
    status_code = status.HTTP_404_NOT_FOUND


class ForbiddenError(OrderError):
    kind = "Forbidden"
    status_code = status.HTTP_403_FORBIDDEN


class InvalidStateError(OrderError):
    """Operation not permitted in the order's current status."""
    kind = "InvalidState"
    status_code = status.HTTP_400_BAD_REQUEST


class InvalidTransitionError(OrderError):
    """Requested status is not reachable from the current status."""
    kind = "InvalidTransition"
    status_code = status.HTTP_400_BAD_REQUEST


class OrderValidationError(OrderError):
    """Malformed input; ``errors`` holds the field-level messages."""
    kind = "ValidationError"
    status_code = status.HTTP_400_BAD_REQUEST


class PreconditionFailedError(OrderError):
    """A dependent entity is not ready (incomplete student form, unapproved teacher)."""
    kind = "PreconditionFailed"
    status_code = status.HTTP_400_BAD_REQUEST


class InternalError(OrderError):
    kind = "Internal"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
