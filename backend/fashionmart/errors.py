# Overview: Error taxonomy shared by services and the top-level error handlers.

"""
API error taxonomy.

Services raise these; the handlers registered in create_app() turn them into
the uniform response envelope. Routes only catch to re-classify.
"""

from __future__ import annotations


class ApiError(Exception):
    """Base class for errors that map onto an HTTP status."""

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str | None = None, *, details: dict | None = None):
        super().__init__(message or self.__class__.__doc__ or self.code)
        self.message = message or (self.__class__.__doc__ or self.code).strip()
        self.details = details or {}


class Unauthenticated(ApiError):
    """Authentication required"""

    status_code = 401
    code = "UNAUTHENTICATED"


class Forbidden(ApiError):
    """Access denied"""

    status_code = 403
    code = "FORBIDDEN"


class NotFound(ApiError):
    """Resource not found"""

    status_code = 404
    code = "NOT_FOUND"


class ValidationError(ApiError):
    """400-level input problem."""

    status_code = 400
    code = "VALIDATION_ERROR"


class InvalidState(ValidationError):
    """Operation not allowed in the entity's current state."""

    code = "INVALID_STATE"


class Conflict(ApiError):
    """409-level business rule conflict (e.g., duplicate category name)."""

    status_code = 409
    code = "CONFLICT"


class UpstreamError(ApiError):
    """Payment provider failure; the provider's message is passed through."""

    status_code = 400
    code = "UPSTREAM_ERROR"
