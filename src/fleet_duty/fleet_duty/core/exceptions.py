from __future__ import annotations

from typing import Optional


class DomainError(Exception):
    """Base exception for business rule violations.

    ``kind`` is stable and meant for callers that map errors to responses;
    ``reason`` narrows a kind (e.g. which conflict happened).
    """

    kind = "DomainError"

    def __init__(self, message: str, *, reason: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.reason = reason


class NotFoundError(DomainError):
    """Raised when a driver, schedule or record is absent or inactive."""

    kind = "NotFound"


class ConflictError(DomainError):
    """Raised when the current state forbids the requested mutation."""

    kind = "Conflict"

    def __init__(self, message: str, *, reason: Optional[str] = None):
        super().__init__(message, reason=str(getattr(reason, "value", reason)) if reason else None)


class ValidationError(DomainError):
    """Raised when input data is invalid or violates domain rules."""

    kind = "Validation"


class AuthorizationError(DomainError):
    """Raised when a role lacks permission for an action."""

    kind = "Forbidden"


class InternalError(DomainError):
    """Raised when storage or aggregation fails underneath an operation."""

    kind = "Internal"
