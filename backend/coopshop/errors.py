# Overview: Domain error taxonomy shared by services and routes.

"""
Every error the order core can raise maps to exactly one HTTP status and one
machine-readable code. Views catch CoopError and render it with
routes.error_response(); the handler registered in create_app() renders any
that escape a view the same way.

DependencyError keeps its public message generic. The underlying exception is
logged by whoever raises it and is never serialized.
"""

from __future__ import annotations


class CoopError(Exception):
    """Base class for errors that have a client-facing shape."""

    status_code = 500
    default_code = "INTERNAL_ERROR"

    def __init__(self, message: str, code: str | None = None, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"ok": False, "error": self.message, "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(CoopError):
    """400-level input problem."""
    status_code = 400
    default_code = "VALIDATION_ERROR"


class NotFoundError(CoopError):
    """Member, branch, department, item, price or order is missing."""
    status_code = 404
    default_code = "NOT_FOUND"


class LimitExceededError(CoopError):
    """Savings or loan cap would be violated by the order total."""
    status_code = 400
    default_code = "LIMIT_EXCEEDED"


class StateConflictError(CoopError):
    """Lifecycle operation is not valid for the order's current status."""
    status_code = 400
    default_code = "STATE_CONFLICT"


class DependencyError(CoopError):
    """Data-store call failed or timed out."""
    status_code = 500
    default_code = "DATABASE_ERROR"


class RateLimitError(CoopError):
    status_code = 429
    default_code = "RATE_LIMIT_EXCEEDED"


class AuthError(CoopError):
    status_code = 401
    default_code = "UNAUTHORIZED"


class ShoppingClosedError(CoopError):
    status_code = 403
    default_code = "SHOPPING_CLOSED"
